from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_member
from app.database.deps import get_db
from app.models.user import User
from app.schemas.team_function import TeamFunctionCreate, TeamFunctionOut, TeamFunctionUpdate
from app.services import directory

router = APIRouter(prefix="/functions", tags=["Functions"])


@router.get("", response_model=list[TeamFunctionOut])
def list_functions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    return directory.list_functions(db)


@router.post("", response_model=TeamFunctionOut)
def create_function(
    payload: TeamFunctionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    return directory.create_function(
        db,
        name=payload.name,
        label=payload.label,
        description=payload.description,
        color=payload.color,
    )


@router.put("", response_model=TeamFunctionOut)
def update_function(
    payload: TeamFunctionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    changes = payload.model_dump(exclude_unset=True)
    function_id = changes.pop("id", None)
    return directory.update_function(db, function_id, changes)


@router.delete("")
def delete_function(
    id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    directory.delete_function(db, id)
    return {"success": True}
