from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFound, ServiceError, ValidationError
from app.models.assignment import Assignment
from app.models.user import User
from app.schemas.assignment import (
    AssignmentBatchOut,
    AssignmentOut,
    BatchFailure,
    CalendarDayOut,
    DayRosterOut,
    MonthCalendarOut,
)
from app.services.directory import build_user_out, list_users

logger = logging.getLogger("uvicorn.error")

AssignmentRow = tuple[Assignment, Optional[User]]


def canonical_date(value) -> str:
    if isinstance(value, date):
        return value.isoformat()
    text = str(value or "").strip()
    try:
        parsed = date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError("Data invalida. Use YYYY-MM-DD.") from exc
    if parsed.isoformat() != text:
        raise ValidationError("Data invalida. Use YYYY-MM-DD.")
    return text


def build_assignment_out(assignment: Assignment, user: Optional[User]) -> AssignmentOut:
    return AssignmentOut(
        id=assignment.id,
        date=assignment.date,
        user_id=assignment.user_id,
        created_by=assignment.created_by,
        created_at=assignment.created_at,
        user=build_user_out(user),
    )


def _rows_query(db: Session):
    # outer join: escalas de usuários excluídos voltam com user = None
    return (
        db.query(Assignment, User)
        .outerjoin(User, User.id == Assignment.user_id)
        .order_by(Assignment.date.asc(), Assignment.created_at.asc(), Assignment.id.asc())
    )


def list_assignments(db: Session, on_date: Optional[str] = None) -> list[AssignmentRow]:
    query = _rows_query(db)
    if on_date is not None:
        query = query.filter(Assignment.date == canonical_date(on_date))
    return query.all()


def create_assignment(db: Session, on_date, user_id: str, created_by: Optional[str]) -> AssignmentRow:
    day = canonical_date(on_date)
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("Usuário não encontrado")

    assignment = Assignment(date=day, user_id=user.id, created_by=created_by)
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment, user


def create_assignments_batch(
    db: Session,
    on_date,
    user_ids: Iterable[str],
    created_by: Optional[str],
) -> AssignmentBatchOut:
    """Cria uma escala por usuário, em sequência e sem transação única.

    Falhas não desfazem o que já foi gravado; cada item com erro aparece em
    `failed`.
    """
    day = canonical_date(on_date)
    outcome = AssignmentBatchOut(date=day)
    for user_id in user_ids:
        try:
            assignment, user = create_assignment(db, day, user_id, created_by)
        except ServiceError as exc:
            db.rollback()
            logger.warning("Falha ao escalar usuário %s em %s: %s", user_id, day, exc.message)
            outcome.failed.append(BatchFailure(user_id=str(user_id), error=exc.message))
            continue
        outcome.created.append(build_assignment_out(assignment, user))
    return outcome


def delete_assignment(db: Session, assignment_id: str) -> None:
    db.query(Assignment).filter(Assignment.id == assignment_id).delete()
    db.commit()


# Visão de calendário


def scheduled_dates(rows: Iterable[AssignmentRow]) -> list[str]:
    return sorted({assignment.date for assignment, _ in rows})


def roster_for_date(rows: Iterable[AssignmentRow], day: str) -> list[AssignmentRow]:
    return [(assignment, user) for assignment, user in rows if assignment.date == day]


def available_users(users: Iterable[User], day_rows: Iterable[AssignmentRow]) -> list[User]:
    scheduled_ids = {assignment.user_id for assignment, _ in day_rows}
    return [user for user in users if user.id not in scheduled_ids]


def day_roster(db: Session, on_date) -> DayRosterOut:
    day = canonical_date(on_date)
    day_rows = list_assignments(db, day)
    return DayRosterOut(
        date=day,
        assignments=[build_assignment_out(assignment, user) for assignment, user in day_rows],
        available_users=[build_user_out(user) for user in available_users(list_users(db), day_rows)],
    )


def validate_month(year: int, month: int) -> None:
    if month < 1 or month > 12:
        raise ValidationError("Mês inválido")
    if year < 1 or year > 9999:
        raise ValidationError("Ano inválido")


def month_calendar(db: Session, year: int, month: int) -> MonthCalendarOut:
    validate_month(year, month)
    grid = calendar.Calendar(firstweekday=calendar.MONDAY).monthdatescalendar(year, month)
    first, last = grid[0][0].isoformat(), grid[-1][-1].isoformat()

    counts: dict[str, int] = {}
    rows = db.query(Assignment.date).filter(Assignment.date >= first, Assignment.date <= last).all()
    for (day_key,) in rows:
        counts[day_key] = counts.get(day_key, 0) + 1

    weeks = []
    for week in grid:
        days = []
        for day in week:
            key = day.isoformat()
            days.append(
                CalendarDayOut(
                    date=key,
                    day=day.day,
                    in_month=day.month == month,
                    has_schedule=key in counts,
                    assignment_count=counts.get(key, 0),
                )
            )
        weeks.append(days)
    return MonthCalendarOut(year=year, month=month, weeks=weeks)


def month_rows(db: Session, year: int, month: int) -> list[AssignmentRow]:
    validate_month(year, month)
    prefix = f"{year:04d}-{month:02d}-"
    return _rows_query(db).filter(Assignment.date.like(f"{prefix}%")).all()
