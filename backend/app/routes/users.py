from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_member
from app.core.config import AVATAR_MAX_BYTES
from app.core.permissions import SELF_OR_ADMIN, ensure_capability
from app.database.deps import get_db
from app.models.user import User
from app.schemas.user import PushSubscriptionIn, UserCreate, UserOut, UserUpdate
from app.services import directory, invitations
from app.services.directory import build_user_out

router = APIRouter(prefix='/users', tags=['Users'])


@router.get('', response_model=list[UserOut])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    return [build_user_out(row) for row in directory.list_users(db)]


@router.post('', response_model=UserOut)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    profile, _ = invitations.invite_user(
        db,
        email=payload.email,
        full_name=payload.full_name,
        role=payload.role,
        team_function_id=payload.team_function_id,
    )
    return build_user_out(profile)


@router.put('/me/push-subscription')
def save_push_subscription(
    payload: PushSubscriptionIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    directory.set_push_subscription(db, current_user.id, payload.subscription)
    return {'success': True}


@router.delete('/me/push-subscription')
def remove_push_subscription(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    directory.set_push_subscription(db, current_user.id, None)
    return {'success': True}


@router.put('/{user_id}', response_model=UserOut)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    user = directory.update_user(db, user_id, payload.model_dump(exclude_unset=True))
    return build_user_out(user)


@router.delete('/{user_id}')
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    directory.delete_user(db, user_id, current_user)
    return {'success': True}


@router.put('/{user_id}/avatar', response_model=UserOut, status_code=status.HTTP_200_OK)
def upload_avatar(
    user_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    ensure_capability(current_user, SELF_OR_ADMIN, user_id)
    # Lê no máximo um byte além do limite; o excesso é recusado na validação.
    content = file.file.read(AVATAR_MAX_BYTES + 1)
    user = directory.upload_avatar(db, user_id, file.filename, file.content_type, content)
    return build_user_out(user)


@router.delete('/{user_id}/avatar', response_model=UserOut)
def remove_avatar(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_member),
):
    ensure_capability(current_user, SELF_OR_ADMIN, user_id)
    return build_user_out(directory.remove_avatar(db, user_id))
