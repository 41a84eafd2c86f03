from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.user import UserOut


class AssignmentCreate(BaseModel):
    date: str
    user_id: str


class AssignmentBatchCreate(BaseModel):
    date: str
    user_ids: list[str] = Field(default_factory=list)


class AssignmentOut(BaseModel):
    id: str
    date: str
    user_id: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    user: Optional[UserOut] = None


class BatchFailure(BaseModel):
    user_id: str
    error: str


class AssignmentBatchOut(BaseModel):
    date: str
    created: list[AssignmentOut] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)


class DayRosterOut(BaseModel):
    date: str
    assignments: list[AssignmentOut] = Field(default_factory=list)
    available_users: list[UserOut] = Field(default_factory=list)


class CalendarDayOut(BaseModel):
    date: str
    day: int
    in_month: bool
    has_schedule: bool
    assignment_count: int = 0


class MonthCalendarOut(BaseModel):
    year: int
    month: int
    weeks: list[list[CalendarDayOut]] = Field(default_factory=list)
