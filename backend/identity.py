"""User numeric ids and human-readable registration ids."""
import logging
from typing import Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import CapacityExceeded, ConflictError, NotFound
from models import (
    USER_NUMERIC_ID_MAX,
    USER_NUMERIC_ID_MIN,
    Event,
    EventCategory,
    IdSequence,
    Role,
    User,
)

logger = logging.getLogger(__name__)

USER_SEQUENCE = "user_numeric_id"
REGISTRATION_PREFIX = "INS"

CATEGORY_CODES: Dict[EventCategory, str] = {
    EventCategory.CULTURAL: "CUL",
    EventCategory.LITERARY: "LIT",
    EventCategory.FINEARTS: "FA",
}
CENTRALIZED_CODE = "CN"

# Per-department codes are not defined yet; every department resolves to the
# placeholder until this table is filled in.
DEPARTMENT_CODES: Dict[str, str] = {}
DEFAULT_DEPARTMENT_CODE = "DEPT"


def seed_user_sequence(db: Session) -> None:
    if db.query(IdSequence).filter(IdSequence.name == USER_SEQUENCE).first():
        return
    current_max = db.query(func.max(User.numeric_id)).scalar()
    start = max(current_max or 0, USER_NUMERIC_ID_MIN - 1)
    db.add(IdSequence(name=USER_SEQUENCE, value=start))
    try:
        db.commit()
    except IntegrityError:
        # Another process seeded the row between our read and insert.
        db.rollback()
        logger.info("User id sequence already seeded by a concurrent writer")


def _bump_user_sequence(db: Session) -> int:
    result = db.execute(
        update(IdSequence)
        .where(IdSequence.name == USER_SEQUENCE)
        .values(value=IdSequence.value + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def allocate_user_numeric_id(db: Session) -> int:
    """Reserve the next user numeric id inside the caller's transaction.

    The UPDATE takes the sequence row lock, so concurrent creators are
    serialised until the caller commits or rolls back.
    """
    if not _bump_user_sequence(db):
        seed_user_sequence(db)
        _bump_user_sequence(db)
    value = db.execute(select(IdSequence.value).where(IdSequence.name == USER_SEQUENCE)).scalar_one()
    if value > USER_NUMERIC_ID_MAX:
        raise CapacityExceeded(f"User numeric ids are exhausted (next would be {value})")
    return value


def create_user(
    db: Session,
    email: str,
    name: Optional[str] = None,
    image: Optional[str] = None,
    role: Role = Role.USER,
) -> User:
    try:
        numeric_id = allocate_user_numeric_id(db)
        user = User(
            numeric_id=numeric_id,
            email=email.strip().lower(),
            name=name,
            image=image,
            role=role,
            profile_completed=False,
        )
        db.add(user)
        db.commit()
    except CapacityExceeded:
        db.rollback()
        logger.critical("User numeric id space exhausted; refusing to create %s", email)
        raise
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("An account with this email already exists") from exc
    db.refresh(user)
    logger.info("Created user %s with numeric id %s", user.email, user.numeric_id)
    return user


def sign_in_user(db: Session, email: str, name: Optional[str], image: Optional[str], is_admin: bool) -> User:
    normalized = email.strip().lower()
    user = db.query(User).filter(User.email == normalized).first()
    if user is None:
        try:
            user = create_user(db, normalized, name=name, image=image, role=Role.ADMIN if is_admin else Role.USER)
        except ConflictError:
            # First sign-in raced with another request for the same account.
            user = db.query(User).filter(User.email == normalized).first()
            if user is None:
                raise
        return user

    changed = False
    if is_admin and user.role != Role.ADMIN:
        user.role = Role.ADMIN
        changed = True
    if name and not user.name:
        user.name = name
        changed = True
    if image and user.image != image:
        user.image = image
        changed = True
    if changed:
        db.commit()
        db.refresh(user)
    return user


def department_code_for(event: Event) -> str:
    department = str(event.department_code or "").strip().upper()
    if department:
        return DEPARTMENT_CODES.get(department, DEFAULT_DEPARTMENT_CODE)
    return CATEGORY_CODES.get(event.category, CENTRALIZED_CODE)


def build_registration_id(event: Event, user: User) -> str:
    event_part = str(event.id).zfill(2)
    user_part = str(user.numeric_id).zfill(5)
    return f"{REGISTRATION_PREFIX}-{department_code_for(event)}-{event_part}-{user_part}"


def generate_registration_id(db: Session, event_id: int, user_id: str) -> str:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFound("Event not found")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return build_registration_id(event, user)
