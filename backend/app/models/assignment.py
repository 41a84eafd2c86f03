from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, String, func

from app.database.base import Base


class Assignment(Base):
    """Escala de um usuário em um dia.

    `user_id` e `created_by` não têm FK no banco: excluir um usuário mantém as
    escalas dele (órfãs). Não há restrição de unicidade em (date, user_id).
    """

    __tablename__ = "schedules"
    __table_args__ = (
        Index("idx_schedules_date", "date"),
        Index("idx_schedules_user_id", "user_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    date = Column(String(10), nullable=False)
    user_id = Column(String(36), nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
