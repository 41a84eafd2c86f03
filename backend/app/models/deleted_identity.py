from sqlalchemy import Column, DateTime, String, func

from app.database.base import Base


class DeletedIdentity(Base):
    """Identidade cujo perfil foi excluído por um administrador.

    Impede que um token ainda válido recrie o perfil no próximo acesso.
    """

    __tablename__ = "deleted_identities"

    id = Column(String(36), primary_key=True)
    deleted_by = Column(String(36), nullable=True)
    deleted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
