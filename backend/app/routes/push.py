import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from app.core.auth import get_current_member
from app.core.config import PUSH_API_SECRET, VAPID_PUBLIC_KEY
from app.core.errors import Forbidden
from app.database.deps import get_db
from app.models.user import User
from app.schemas.push import PushMessageIn
from app.services import notifications

router = APIRouter(prefix="/push", tags=["Push"])


def verify_push_caller(x_push_secret: Optional[str] = Header(None)) -> None:
    if not PUSH_API_SECRET:
        return
    if not x_push_secret or not hmac.compare_digest(x_push_secret, PUSH_API_SECRET):
        raise Forbidden("Chamada de push não autorizada")


@router.post("")
def send_push(
    payload: PushMessageIn,
    db: Session = Depends(get_db),
    _: None = Depends(verify_push_caller),
):
    notifications.send_push(db, payload.user_id, payload.title, payload.body, payload.url)
    return {"success": True}


@router.get("/public-key")
def read_public_key(current_user: User = Depends(get_current_member)):
    return {"public_key": VAPID_PUBLIC_KEY}
