import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import (
    ACCESS_TOKEN_COOKIE,
    ADMIN_EMAIL,
    ALGORITHM,
    SUPABASE_JWT_AUDIENCE,
    SUPABASE_JWT_SECRET,
)
from app.core.errors import Unauthorized
from app.core.permissions import ADMIN_ONLY, ANY_AUTHENTICATED, ensure_capability
from app.database.deps import get_db
from app.models.deleted_identity import DeletedIdentity
from app.models.user import User
from app.services.usernames import generate_username, unique_username

logger = logging.getLogger("uvicorn.error")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def get_access_token(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> str:
    token = token or request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise Unauthorized("Não autorizado")
    return token


def decode_access_token(token: str) -> dict:
    if not SUPABASE_JWT_SECRET:
        raise Unauthorized("Autenticação não configurada")
    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE or None,
            options={"verify_aud": bool(SUPABASE_JWT_AUDIENCE)},
        )
    except JWTError:
        raise Unauthorized("Credenciais inválidas")
    if not payload.get("sub"):
        raise Unauthorized("Credenciais inválidas")
    return payload


def register_profile_from_claims(db: Session, claims: dict) -> User:
    """Cria o perfil no primeiro login de uma identidade sem registro local."""
    metadata = claims.get("user_metadata") or {}
    email = str(claims.get("email") or "").strip().lower()
    full_name = str(metadata.get("full_name") or "").strip() or email.split("@")[0]
    role = "admin" if ADMIN_EMAIL and email == ADMIN_EMAIL.strip().lower() else "user"
    user = User(
        id=str(claims["sub"]),
        email=email,
        full_name=full_name,
        username=unique_username(db, generate_username(full_name)),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Perfil criado no primeiro login para %s", email)
    return user


def get_current_user(
    token: str = Depends(get_access_token),
    db: Session = Depends(get_db),
) -> User:
    claims = decode_access_token(token)
    identity_id = str(claims["sub"])
    user = db.query(User).filter(User.id == identity_id).first()
    if not user:
        # Perfil excluído por um admin não é recriado pelo token antigo.
        if db.query(DeletedIdentity.id).filter(DeletedIdentity.id == identity_id).first():
            raise Unauthorized("Usuário removido")
        user = register_profile_from_claims(db, claims)
    return user


def require_capability(capability: str):
    def dependency(current_user: User = Depends(get_current_user)):
        return ensure_capability(current_user, capability)

    return dependency


get_current_member = require_capability(ANY_AUTHENTICATED)
get_current_admin = require_capability(ADMIN_ONLY)
