from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from app.schemas.team_function import TeamFunctionOut


class UserCreate(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str = "user"
    team_function_id: Optional[str] = None


class UserUpdate(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    team_function_id: Optional[str] = None
    avatar_url: Optional[str] = None


class UserOut(BaseModel):
    id: str
    email: str
    full_name: str
    username: str
    role: str
    team_function_id: Optional[str] = None
    team_function: Optional[TeamFunctionOut] = None
    avatar_url: Optional[str] = None
    has_push_subscription: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PasswordSetup(BaseModel):
    password: str = ""
    confirm_password: str = ""


class PushSubscriptionIn(BaseModel):
    subscription: dict[str, Any]
