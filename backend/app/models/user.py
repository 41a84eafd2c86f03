from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import relationship

from app.database.base import Base

USER_ROLES = ("admin", "user")
USER_ROLE_LABELS = {
    "admin": "Administrador",
    "user": "Usuário",
}


class User(Base):
    __tablename__ = "users"

    # Mesmo id do registro de identidade no Supabase Auth.
    id = Column(String(36), primary_key=True)
    email = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=False, default="")
    username = Column(String, nullable=False, default="", index=True)
    role = Column(String, nullable=False, default="user")
    team_function_id = Column(String(36), ForeignKey("team_functions.id"), nullable=True, index=True)
    avatar_url = Column(String, nullable=True)
    push_subscription = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    team_function = relationship("TeamFunction", lazy="joined")
