import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from app.core.auth import get_access_token, get_current_member
from app.core.config import ACCESS_TOKEN_COOKIE, APP_URL
from app.core.errors import ServiceError
from app.models.user import User
from app.schemas.user import PasswordSetup, UserOut
from app.services import identity
from app.services.directory import build_user_out, validate_new_password

logger = logging.getLogger("uvicorn.error")
router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_member)):
    return build_user_out(current_user)


@router.get("/callback")
def auth_callback(request: Request, code: Optional[str] = None):
    if code:
        try:
            session = identity.exchange_code_for_session(code, request.cookies.get("sb-code-verifier"))
        except ServiceError as exc:
            logger.warning("Falha ao trocar código de autenticação: %s", exc.message)
        else:
            response = RedirectResponse(f"{APP_URL}/auth/set-password", status_code=303)
            response.set_cookie(
                ACCESS_TOKEN_COOKIE,
                session["access_token"],
                max_age=int(session.get("expires_in") or 3600),
                httponly=True,
                samesite="lax",
                secure=APP_URL.startswith("https://"),
            )
            return response

    return RedirectResponse(f"{APP_URL}/auth/error", status_code=303)


@router.post("/set-password")
def set_password(
    payload: PasswordSetup,
    token: str = Depends(get_access_token),
    current_user: User = Depends(get_current_member),
):
    password = validate_new_password(payload.password, payload.confirm_password)
    identity.update_password(token, password)
    logger.info("Senha definida para %s", current_user.email)
    return {"success": True}
