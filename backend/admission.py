"""Registration admission.

``register_for_event`` runs the precondition checks in a fixed order and
either writes the registration (plus the team roster for team events) in a
single commit or raises exactly one taxonomy error. The storage-level
``uq_registrations_user_event`` constraint is the final word on duplicates,
so two racing attempts for the same pair cannot both succeed.
"""
import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import (
    ConflictError,
    DuplicateRegistration,
    EventFull,
    InvalidTeamMember,
    InvalidTeamSize,
    NotFound,
    ProfileIncomplete,
    RegistrationClosed,
    Unauthenticated,
)
from identity import build_registration_id
from models import Event, PaymentStatus, Registration, TeamMember, User
from profiles import compute_profile_completed, registration_summary, user_registrations
from schemas import RegistrationSummary

logger = logging.getLogger(__name__)


def _clean(value: Any) -> str:
    return str(value or "").strip()


def _member_value(member: Any, field: str) -> str:
    if isinstance(member, dict):
        return _clean(member.get(field))
    return _clean(getattr(member, field, None))


def profile_continuation(event_id: int, is_team_event: bool) -> dict:
    flag = "true" if is_team_event else "false"
    return {
        "redirect": "/profile",
        "callback_url": f"/events/{event_id}?register=true&team={flag}",
        "event_id": event_id,
        "is_team_event": is_team_event,
    }


def team_size_bounds(event: Event):
    min_size = event.min_team_size or 1
    max_size = event.max_team_size or min_size
    return min_size, max_size


def validate_team(event: Event, team_members: Iterable[Any]) -> List[dict]:
    """Return the cleaned additional members, or raise for a bad roster.

    Sizes count the registering user as the leader, so ``n`` additional
    members make a team of ``n + 1``.
    """
    members = list(team_members or [])
    if not event.is_team_event:
        if members:
            raise InvalidTeamSize("This event does not accept team members")
        return []

    min_size, max_size = team_size_bounds(event)
    total = len(members) + 1
    if total < min_size or total > max_size:
        raise InvalidTeamSize(
            f"Team size must be between {min_size} and {max_size} members including the leader",
            extra={"min_team_size": min_size, "max_team_size": max_size, "team_size": total},
        )

    cleaned = []
    for index, member in enumerate(members, start=1):
        row = {field: _member_value(member, field) for field in ("name", "usn", "phone")}
        if not all(row.values()):
            raise InvalidTeamMember(
                f"Team member {index} needs a name, USN and phone number",
                extra={"member_index": index},
            )
        cleaned.append(row)
    return cleaned


def _existing_registration(db: Session, user_id: str, event_id: int) -> Optional[Registration]:
    return (
        db.query(Registration)
        .filter(Registration.user_id == user_id, Registration.event_id == event_id)
        .first()
    )


def register_for_event(
    db: Session,
    user: Optional[User],
    event_id: int,
    notes: Optional[str] = None,
    team_members: Optional[Iterable[Any]] = None,
) -> Registration:
    if user is None:
        raise Unauthenticated("Please sign in to register for events")

    members = list(team_members or [])

    if not compute_profile_completed(user.department, user.college, user.phone, user.usn):
        event = db.query(Event).filter(Event.id == event_id).first()
        is_team_event = bool(event.is_team_event) if event else bool(members)
        raise ProfileIncomplete(extra=profile_continuation(event_id, is_team_event))

    if _existing_registration(db, user.id, event_id):
        raise DuplicateRegistration()

    # Row lock on PostgreSQL; SQLite serialises writers on the database file instead.
    event = db.query(Event).filter(Event.id == event_id).with_for_update().first()
    if not event:
        raise NotFound("Event not found")
    if not event.registration_open:
        raise RegistrationClosed()

    roster = validate_team(event, members)

    registered = db.query(func.count(Registration.id)).filter(Registration.event_id == event.id).scalar() or 0
    if registered >= event.capacity:
        raise EventFull()

    registration = Registration(
        registration_id=build_registration_id(event, user),
        user_id=user.id,
        event_id=event.id,
        payment_status=PaymentStatus.UNPAID,
        notes=_clean(notes) or None,
    )
    if event.is_team_event:
        registration.team_members.append(TeamMember(
            name=_clean(user.name) or user.email,
            usn=_clean(user.usn),
            phone=_clean(user.phone),
            is_leader=True,
            position=0,
        ))
        for position, member in enumerate(roster, start=1):
            registration.team_members.append(TeamMember(is_leader=False, position=position, **member))

    db.add(registration)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _existing_registration(db, user.id, event_id):
            raise DuplicateRegistration() from exc
        raise ConflictError("Registration could not be saved") from exc

    db.refresh(registration)
    logger.info(
        "Registered %s for event %s as %s (team size %s)",
        user.email,
        event.id,
        registration.registration_id,
        len(roster) + 1,
    )
    return registration


def list_user_registrations(db: Session, user: Optional[User]) -> List[RegistrationSummary]:
    if user is None:
        raise Unauthenticated()
    return [registration_summary(reg) for reg in user_registrations(db, user)]
