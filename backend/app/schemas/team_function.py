from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TeamFunctionCreate(BaseModel):
    name: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class TeamFunctionUpdate(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class TeamFunctionOut(BaseModel):
    id: str
    name: str
    label: str
    description: Optional[str] = None
    color: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
