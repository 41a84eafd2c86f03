from datetime import datetime
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_member
from app.database.deps import get_db
from app.models.user import User
from app.schemas.assignment import (
    AssignmentBatchCreate,
    AssignmentBatchOut,
    AssignmentCreate,
    AssignmentOut,
    DayRosterOut,
    MonthCalendarOut,
)
from app.services import roster
from app.services.roster import build_assignment_out
from app.services.roster_pdf import build_month_roster_pdf

router = APIRouter(prefix="/schedules", tags=["Schedules"])


@router.get("", response_model=list[AssignmentOut])
def list_schedules(
    date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    return [build_assignment_out(assignment, user) for assignment, user in roster.list_assignments(db, date)]


@router.get("/dates", response_model=list[str])
def list_scheduled_dates(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    return roster.scheduled_dates(roster.list_assignments(db))


@router.get("/day/{day}", response_model=DayRosterOut)
def read_day_roster(
    day: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    return roster.day_roster(db, day)


@router.get("/calendar", response_model=MonthCalendarOut)
def read_month_calendar(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    today = datetime.now()
    year = today.year if year is None else year
    month = today.month if month is None else month
    return roster.month_calendar(db, year, month)


@router.get("/export")
def export_month_pdf(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    today = datetime.now()
    year = today.year if year is None else year
    month = today.month if month is None else month
    pdf_bytes = build_month_roster_pdf(year, month, roster.month_rows(db, year, month))
    headers = {"Content-Disposition": f'attachment; filename="escala_{year:04d}_{month:02d}.pdf"'}
    return StreamingResponse(BytesIO(pdf_bytes), media_type="application/pdf", headers=headers)


@router.post("", response_model=AssignmentOut)
def create_schedule(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    assignment, user = roster.create_assignment(db, payload.date, payload.user_id, current_user.id)
    return build_assignment_out(assignment, user)


@router.post("/batch", response_model=AssignmentBatchOut)
def create_schedules_batch(
    payload: AssignmentBatchCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    return roster.create_assignments_batch(db, payload.date, payload.user_ids, current_user.id)


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    roster.delete_assignment(db, schedule_id)
    return {"success": True}
