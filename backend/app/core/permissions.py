from typing import Optional

from app.core.errors import Forbidden, Unauthorized
from app.models.user import User

ANY_AUTHENTICATED = "any_authenticated"
ADMIN_ONLY = "admin_only"
SELF_OR_ADMIN = "self_or_admin"

CAPABILITIES = {ANY_AUTHENTICATED, ADMIN_ONLY, SELF_OR_ADMIN}

DENIED_MESSAGES = {
    ADMIN_ONLY: "Apenas administradores podem realizar esta ação",
    SELF_OR_ADMIN: "Apenas o próprio usuário ou um administrador pode realizar esta ação",
}


def is_admin(user: Optional[User]) -> bool:
    if not user:
        return False
    return str(getattr(user, "role", "")).strip() == "admin"


def has_capability(user: Optional[User], capability: str, target_user_id: Optional[str] = None) -> bool:
    if capability not in CAPABILITIES:
        raise ValueError(f"Capacidade desconhecida: {capability}")
    if not user:
        return False
    if capability == ANY_AUTHENTICATED:
        return True
    if capability == ADMIN_ONLY:
        return is_admin(user)
    if is_admin(user):
        return True
    return target_user_id is not None and str(target_user_id) == str(user.id)


def ensure_capability(user: Optional[User], capability: str, target_user_id: Optional[str] = None) -> User:
    """Valida a capacidade do chamador e devolve o próprio usuário.

    Sem sessão levanta `Unauthorized`; com sessão mas sem a capacidade,
    `Forbidden`.
    """
    if not user:
        raise Unauthorized()
    if not has_capability(user, capability, target_user_id):
        raise Forbidden(DENIED_MESSAGES.get(capability))
    return user
