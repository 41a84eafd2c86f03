from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Text, func

from app.database.base import Base

DEFAULT_FUNCTION_COLOR = "#062D49"


class TeamFunction(Base):
    __tablename__ = "team_functions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False, unique=True, index=True)
    label = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=False, default=DEFAULT_FUNCTION_COLOR)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
