from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import ConflictError
from models import User


def normalize_identifier(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def normalize_usn(value: Optional[str]) -> Optional[str]:
    cleaned = str(value or "").strip().upper()
    return cleaned or None


def ensure_usn_available(db: Session, usn: Optional[str], *, exclude_user_id: Optional[str] = None) -> None:
    normalized = normalize_identifier(usn)
    if not normalized:
        return

    query = db.query(User.id).filter(func.lower(func.trim(User.usn)) == normalized)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ConflictError("This USN/College ID is already registered with a different account")
