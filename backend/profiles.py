import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from errors import ConflictError
from identifier_rules import ensure_usn_available, normalize_usn
from models import Registration, User
from schemas import ProfileResponse, ProfileUpdate, RegistrationSummary, UserResponse

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "phone", "address", "department", "college")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def compute_profile_completed(
    department: Optional[str],
    college: Optional[str],
    phone: Optional[str],
    usn: Optional[str],
) -> bool:
    """A profile is complete once all four registration fields carry text."""
    return all(_clean(value) for value in (department, college, phone, usn))


def refresh_profile_completed(user: User) -> bool:
    user.profile_completed = compute_profile_completed(user.department, user.college, user.phone, user.usn)
    return user.profile_completed


def update_profile(db: Session, user: User, data: ProfileUpdate) -> User:
    updates = data.model_dump(exclude_unset=True)

    # Nothing may be applied to the session before the USN is cleared.
    usn = normalize_usn(updates.get("usn"))
    if "usn" in updates:
        try:
            ensure_usn_available(db, usn, exclude_user_id=user.id)
        except ConflictError:
            db.rollback()
            raise

    for field in TEXT_FIELDS:
        if field in updates:
            setattr(user, field, _clean(updates[field]))
    if "semester" in updates:
        user.semester = updates["semester"]
    if "needs_accommodation" in updates and updates["needs_accommodation"] is not None:
        user.needs_accommodation = bool(updates["needs_accommodation"])
    if "usn" in updates:
        user.usn = usn

    refresh_profile_completed(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("This USN/College ID is already registered with a different account") from exc
    db.refresh(user)
    logger.info("Profile updated for %s (complete=%s)", user.email, user.profile_completed)
    return user


def registration_summary(registration: Registration) -> RegistrationSummary:
    event = registration.event
    return RegistrationSummary(
        id=registration.id,
        registration_id=registration.registration_id,
        event_id=event.id,
        event_name=event.title,
        date=event.date,
        time=event.time,
        location=event.location,
        fee=event.fee,
        is_team_event=bool(event.is_team_event),
        team_size=max(len(registration.team_members), 1),
        payment_status=registration.payment_status.value,
        created_at=registration.created_at,
    )


def user_registrations(db: Session, user: User):
    return (
        db.query(Registration)
        .options(joinedload(Registration.event), selectinload(Registration.team_members))
        .filter(Registration.user_id == user.id)
        .order_by(Registration.created_at.desc(), Registration.id.asc())
        .all()
    )


def profile_summary(db: Session, user: User) -> ProfileResponse:
    base = UserResponse.model_validate(user).model_dump()
    registrations = [registration_summary(reg) for reg in user_registrations(db, user)]
    return ProfileResponse(**base, registrations=registrations)
