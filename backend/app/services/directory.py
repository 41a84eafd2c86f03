from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound, ServiceError, ValidationError
from app.models.deleted_identity import DeletedIdentity
from app.models.team_function import DEFAULT_FUNCTION_COLOR, TeamFunction
from app.models.user import USER_ROLES, User
from app.schemas.team_function import TeamFunctionOut
from app.schemas.user import UserOut
from app.services import identity, storage, supabase
from app.services.usernames import generate_username, unique_username

logger = logging.getLogger("uvicorn.error")

COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USER_FIELDS = ("email", "full_name", "role", "team_function_id", "avatar_url")


def normalize_function_name(value: str) -> str:
    return re.sub(r"\s+", "_", (value or "").strip().lower())


def clean_text(value: Any) -> str:
    return str(value or "").strip()


def is_valid_email(value: str) -> bool:
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value))


def build_function_out(team_function: Optional[TeamFunction]) -> Optional[TeamFunctionOut]:
    if team_function is None:
        return None
    return TeamFunctionOut.model_validate(team_function)


def build_user_out(user: Optional[User]) -> Optional[UserOut]:
    if user is None:
        return None
    return UserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name or "",
        username=user.username or "",
        role=user.role,
        team_function_id=user.team_function_id,
        team_function=build_function_out(user.team_function),
        avatar_url=user.avatar_url,
        has_push_subscription=bool(user.push_subscription),
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _validate_color(color: Optional[str]) -> Optional[str]:
    if color is None:
        return None
    color = color.strip()
    if not COLOR_PATTERN.match(color):
        raise ValidationError("Cor inválida. Use o formato #RRGGBB.")
    return color


def _ensure_unique_function_name(db: Session, name: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(TeamFunction.id).filter(TeamFunction.name == name)
    if exclude_id:
        query = query.filter(TeamFunction.id != exclude_id)
    if query.first():
        raise ValidationError(f"Já existe uma função com o nome '{name}'")


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Registro duplicado ou inválido") from exc


# Funções


def list_functions(db: Session) -> list[TeamFunction]:
    return db.query(TeamFunction).order_by(TeamFunction.label.asc()).all()


def get_function(db: Session, function_id: str) -> TeamFunction:
    team_function = db.query(TeamFunction).filter(TeamFunction.id == function_id).first()
    if not team_function:
        raise NotFound("Função não encontrada")
    return team_function


def create_function(
    db: Session,
    name: Optional[str],
    label: Optional[str],
    description: Optional[str] = None,
    color: Optional[str] = None,
) -> TeamFunction:
    normalized = normalize_function_name(name or "")
    label = clean_text(label)
    if not normalized or not label:
        raise ValidationError("Nome e rótulo são obrigatórios")
    _ensure_unique_function_name(db, normalized)

    team_function = TeamFunction(
        name=normalized,
        label=label,
        description=description,
        color=_validate_color(color) if color else DEFAULT_FUNCTION_COLOR,
    )
    db.add(team_function)
    _commit(db)
    db.refresh(team_function)
    return team_function


def update_function(db: Session, function_id: Optional[str], changes: dict[str, Any]) -> TeamFunction:
    if not function_id:
        raise ValidationError("ID é obrigatório")
    team_function = get_function(db, function_id)

    if changes.get("name") is not None:
        normalized = normalize_function_name(changes["name"])
        if not normalized:
            raise ValidationError("Nome e rótulo são obrigatórios")
        _ensure_unique_function_name(db, normalized, exclude_id=team_function.id)
        team_function.name = normalized
    if changes.get("label") is not None:
        label = clean_text(changes["label"])
        if not label:
            raise ValidationError("Nome e rótulo são obrigatórios")
        team_function.label = label
    if "description" in changes:
        team_function.description = changes["description"]
    if changes.get("color") is not None:
        team_function.color = _validate_color(changes["color"])

    _commit(db)
    db.refresh(team_function)
    return team_function


def delete_function(db: Session, function_id: Optional[str]) -> None:
    if not function_id:
        raise ValidationError("ID é obrigatório")
    in_use = db.query(User.id).filter(User.team_function_id == function_id).limit(1).first()
    if in_use:
        raise Conflict("Esta função está sendo usada por usuários. Remova os usuários primeiro.")
    team_function = get_function(db, function_id)
    db.delete(team_function)
    db.commit()


# Usuários


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.full_name.asc()).all()


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("Usuário não encontrado")
    return user


def validate_role(role: Optional[str]) -> str:
    role = clean_text(role)
    if role not in USER_ROLES:
        raise ValidationError("Perfil inválido")
    return role


def validate_team_function(db: Session, team_function_id: Optional[str]) -> Optional[str]:
    if not team_function_id:
        return None
    if not db.query(TeamFunction.id).filter(TeamFunction.id == team_function_id).first():
        raise ValidationError("Função não encontrada")
    return team_function_id


def update_user(db: Session, user_id: str, changes: dict[str, Any]) -> User:
    user = get_user(db, user_id)
    data = {key: value for key, value in changes.items() if key in USER_FIELDS}

    if "email" in data:
        email = clean_text(data["email"]).lower()
        if not is_valid_email(email):
            raise ValidationError("Email inválido")
        user.email = email
    if "full_name" in data:
        full_name = clean_text(data["full_name"])
        if not full_name:
            raise ValidationError("Nome é obrigatório")
        if full_name != user.full_name:
            user.full_name = full_name
            user.username = unique_username(db, generate_username(full_name), exclude_user_id=user.id)
    if "role" in data:
        user.role = validate_role(data["role"])
    if "team_function_id" in data:
        user.team_function_id = validate_team_function(db, data["team_function_id"])
    if "avatar_url" in data:
        user.avatar_url = data["avatar_url"] or None

    _commit(db)
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: str, current_user: User) -> None:
    if current_user.id == user_id:
        raise ValidationError("Não é possível excluir o próprio usuário")
    user = get_user(db, user_id)
    # As escalas do usuário permanecem no banco (órfãs).
    db.delete(user)
    db.merge(DeletedIdentity(id=user_id, deleted_by=current_user.id))
    db.commit()
    logger.info("Usuário %s excluído por %s", user_id, current_user.id)

    if supabase.is_configured():
        try:
            identity.delete_identity(user_id)
        except ServiceError as exc:
            logger.warning("Falha ao remover identidade %s no Supabase Auth: %s", user_id, exc.message)


def validate_new_password(password: str, confirmation: str) -> str:
    if len(password or "") < 6:
        raise ValidationError("A senha deve ter pelo menos 6 caracteres")
    if password != confirmation:
        raise ValidationError("As senhas não coincidem")
    return password


def upload_avatar(
    db: Session,
    user_id: str,
    filename: Optional[str],
    content_type: Optional[str],
    content: bytes,
) -> User:
    user = get_user(db, user_id)
    user.avatar_url = storage.store_avatar(user.id, filename, content_type, content)
    db.commit()
    db.refresh(user)
    return user


def remove_avatar(db: Session, user_id: str) -> User:
    user = get_user(db, user_id)
    storage.remove_avatar_files(user.id)
    user.avatar_url = None
    db.commit()
    db.refresh(user)
    return user


def set_push_subscription(db: Session, user_id: str, subscription: Optional[dict]) -> User:
    user = get_user(db, user_id)
    if subscription is not None and not str(subscription.get("endpoint") or "").strip():
        raise ValidationError("Inscrição de push inválida: endpoint ausente")
    user.push_subscription = json.dumps(subscription) if subscription is not None else None
    db.commit()
    db.refresh(user)
    return user
