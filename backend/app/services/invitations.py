"""Convite de usuários: cria a identidade no Supabase Auth e concilia o perfil.

Estados: requested -> identity_created -> profile_reconciled, ou failed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import ServiceError, ValidationError
from app.models.deleted_identity import DeletedIdentity
from app.models.user import User
from app.services import directory, identity
from app.services.usernames import unique_username, username_from_email

logger = logging.getLogger("uvicorn.error")

REQUESTED = "requested"
IDENTITY_CREATED = "identity_created"
PROFILE_RECONCILED = "profile_reconciled"
FAILED = "failed"


@dataclass
class Invitation:
    email: str
    full_name: str
    role: str = "user"
    team_function_id: Optional[str] = None
    state: str = REQUESTED
    identity_id: Optional[str] = None
    failure_reason: Optional[str] = None
    history: list[str] = field(default_factory=lambda: [REQUESTED])

    def advance(self, state: str, reason: Optional[str] = None) -> None:
        self.state = state
        self.history.append(state)
        if reason:
            self.failure_reason = reason


def validate_request(
    db: Session,
    email: Optional[str],
    full_name: Optional[str],
    role: Optional[str],
    team_function_id: Optional[str],
) -> Invitation:
    email = directory.clean_text(email).lower()
    full_name = directory.clean_text(full_name)
    if not directory.is_valid_email(email):
        raise ValidationError("Email inválido")
    if not full_name:
        raise ValidationError("Nome é obrigatório")
    return Invitation(
        email=email,
        full_name=full_name,
        role=directory.validate_role(role or "user"),
        team_function_id=directory.validate_team_function(db, team_function_id),
    )


def reconcile_profile(db: Session, invitation: Invitation) -> User:
    """Upsert idempotente do perfil, chaveado pelo id da identidade."""
    profile = db.query(User).filter(User.id == invitation.identity_id).first()
    if profile is None:
        profile = User(
            id=invitation.identity_id,
            email=invitation.email,
            full_name=invitation.full_name,
            username=unique_username(db, username_from_email(invitation.email)),
            role=invitation.role,
            team_function_id=invitation.team_function_id,
        )
        db.add(profile)
    elif invitation.role != "user" or invitation.team_function_id:
        profile.role = invitation.role
        profile.team_function_id = invitation.team_function_id
    # Um novo convite reativa a identidade, caso ela tenha sido excluída antes.
    db.query(DeletedIdentity).filter(DeletedIdentity.id == invitation.identity_id).delete()
    db.commit()
    db.refresh(profile)
    return profile


def _compensate(db: Session, invitation: Invitation) -> None:
    db.rollback()
    try:
        identity.delete_identity(invitation.identity_id)
    except ServiceError:
        logger.exception("Falha ao desfazer identidade %s após erro no perfil", invitation.identity_id)


def invite_user(
    db: Session,
    email: Optional[str],
    full_name: Optional[str],
    role: Optional[str] = "user",
    team_function_id: Optional[str] = None,
) -> tuple[User, Invitation]:
    invitation = validate_request(db, email, full_name, role, team_function_id)

    try:
        created = identity.invite_user_by_email(invitation.email, invitation.full_name)
    except ServiceError as exc:
        invitation.advance(FAILED, exc.message)
        raise
    invitation.identity_id = str(created["id"])
    invitation.advance(IDENTITY_CREATED)

    try:
        profile = reconcile_profile(db, invitation)
    except Exception as exc:
        invitation.advance(FAILED, str(exc))
        logger.exception("Falha ao conciliar perfil do convite para %s", invitation.email)
        _compensate(db, invitation)
        raise
    invitation.advance(PROFILE_RECONCILED)
    logger.info("Convite enviado para %s (identidade %s)", invitation.email, invitation.identity_id)
    return profile, invitation
