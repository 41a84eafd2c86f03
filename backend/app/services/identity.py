"""Chamadas ao Supabase Auth (provedor de identidade externo)."""
import logging
from typing import Optional
from urllib.parse import quote

from app.core.config import APP_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY
from app.core.errors import UpstreamError
from app.services.supabase import error_message, supabase_json_request, supabase_request

logger = logging.getLogger("uvicorn.error")


def invite_user_by_email(email: str, full_name: str) -> dict:
    redirect_to = quote(f"{APP_URL}/auth/callback", safe="")
    response_status, parsed = supabase_json_request(
        method="POST",
        path=f"/auth/v1/invite?redirect_to={redirect_to}",
        payload={"email": email, "data": {"full_name": full_name}},
        api_key=SUPABASE_SERVICE_ROLE_KEY,
    )
    if response_status not in {200, 201}:
        message = error_message(parsed, "Falha ao enviar convite")
        logger.warning("Convite recusado pelo Supabase Auth (%s): %s", response_status, message)
        raise UpstreamError(message, status_code=response_status if response_status >= 400 else 502)

    identity = parsed.get("user") if isinstance(parsed.get("user"), dict) else parsed
    if not identity or not identity.get("id"):
        raise UpstreamError("Resposta inválida do Supabase Auth ao convidar usuário")
    return identity


def delete_identity(identity_id: str) -> None:
    response_status, _ = supabase_request(
        method="DELETE",
        path=f"/auth/v1/admin/users/{quote(identity_id, safe='')}",
        api_key=SUPABASE_SERVICE_ROLE_KEY,
    )
    if response_status not in {200, 204, 404}:
        raise UpstreamError(f"Falha ao remover identidade {identity_id} (status {response_status})")


def exchange_code_for_session(code: str, code_verifier: Optional[str] = None) -> dict:
    payload = {"auth_code": code}
    if code_verifier:
        payload["code_verifier"] = code_verifier
    response_status, parsed = supabase_json_request(
        method="POST",
        path="/auth/v1/token?grant_type=pkce",
        payload=payload,
        api_key=SUPABASE_ANON_KEY or SUPABASE_SERVICE_ROLE_KEY,
    )
    if response_status != 200 or not parsed.get("access_token"):
        raise UpstreamError(
            error_message(parsed, "Código de autenticação inválido"),
            status_code=response_status if response_status >= 400 else 502,
        )
    return parsed


def update_password(access_token: str, password: str) -> None:
    response_status, parsed = supabase_json_request(
        method="PUT",
        path="/auth/v1/user",
        payload={"password": password},
        api_key=SUPABASE_ANON_KEY or SUPABASE_SERVICE_ROLE_KEY,
        bearer=access_token,
    )
    if response_status != 200:
        raise UpstreamError(
            error_message(parsed, "Falha ao definir a senha"),
            status_code=response_status if response_status >= 400 else 502,
        )
