from __future__ import annotations

import re
from typing import Optional

from sqlalchemy.orm import Session

from app.models.user import User


def generate_username(full_name: str) -> str:
    parts = [part for part in (full_name or "").strip().lower().split() if part]
    if len(parts) >= 2:
        return f"{parts[0]}.{parts[-1]}"
    return parts[0] if parts else ""


def username_from_email(email: str) -> str:
    local_part = (email or "").strip().lower().split("@")[0]
    return re.sub(r"\s+", "", local_part)


def unique_username(db: Session, base: str, exclude_user_id: Optional[str] = None) -> str:
    """Devolve `base` ou, se já estiver em uso, `base.2`, `base.3`, ..."""
    base = base or "usuario"
    query = db.query(User.username).filter(
        (User.username == base) | (User.username.like(f"{base}.%"))
    )
    if exclude_user_id:
        query = query.filter(User.id != exclude_user_id)
    taken = {row[0] for row in query.all()}
    if base not in taken:
        return base
    suffix = 2
    while f"{base}.{suffix}" in taken:
        suffix += 1
    return f"{base}.{suffix}"
