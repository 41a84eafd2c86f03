import json
import logging
from typing import Optional

import requests
from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from app.core.config import VAPID_PRIVATE_KEY, WEB_PUSH_EMAIL
from app.core.errors import UpstreamError, ValidationError
from app.models.user import User

logger = logging.getLogger("uvicorn.error")

# Respostas do serviço de push que indicam inscrição expirada/cancelada.
STALE_SUBSCRIPTION_STATUSES = {404, 410}


def vapid_claims() -> dict:
    subject = (WEB_PUSH_EMAIL or "").strip()
    if not subject:
        raise UpstreamError("Notificações push não configuradas (WEB_PUSH_EMAIL).", status_code=500)
    if not subject.startswith(("mailto:", "https://")):
        subject = f"mailto:{subject}"
    return {"sub": subject}


def vapid_private_key() -> str:
    key = (VAPID_PRIVATE_KEY or "").strip()
    if not key:
        raise UpstreamError("Notificações push não configuradas (VAPID_PRIVATE_KEY).", status_code=500)
    return key


def load_subscription(user: Optional[User]) -> dict:
    if not user or not user.push_subscription:
        raise ValidationError("User has no push subscription")
    try:
        subscription = json.loads(user.push_subscription)
    except json.JSONDecodeError as exc:
        raise ValidationError("User has no push subscription") from exc
    if not isinstance(subscription, dict) or not subscription.get("endpoint"):
        raise ValidationError("User has no push subscription")
    return subscription


def send_push(
    db: Session,
    user_id: Optional[str],
    title: Optional[str],
    body: Optional[str],
    url: Optional[str] = "/",
) -> None:
    """Envia uma notificação para a inscrição registrada do usuário.

    Não há nova tentativa. Se o serviço de push responder que a inscrição não
    existe mais, ela é removida do perfil.
    """
    user = db.query(User).filter(User.id == user_id).first() if user_id else None
    subscription = load_subscription(user)
    private_key = vapid_private_key()
    claims = vapid_claims()
    payload = json.dumps({"title": title or "", "body": body or "", "url": url or "/"}, ensure_ascii=False)

    try:
        webpush(
            subscription_info=subscription,
            data=payload,
            vapid_private_key=private_key,
            vapid_claims=claims,
        )
    except WebPushException as exc:
        response_status = getattr(getattr(exc, "response", None), "status_code", None)
        logger.warning("Falha ao enviar push para %s (status %s): %s", user_id, response_status, exc)
        if response_status in STALE_SUBSCRIPTION_STATUSES:
            user.push_subscription = None
            db.commit()
        raise UpstreamError("Failed to send notification", status_code=500) from exc
    except (requests.RequestException, ValueError) as exc:
        # Falha de rede ou chave VAPID inválida.
        logger.warning("Falha ao enviar push para %s: %s", user_id, exc)
        raise UpstreamError("Failed to send notification", status_code=500) from exc
    logger.info("Push enviado para %s", user_id)
