import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from errors import NotFound
from models import Event, PaymentStatus, Registration, Role, User
from security import require_role
from time_utils import now_utc
from utils import log_admin_action

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    PaymentStatus.PAID: "CONFIRMED",
    PaymentStatus.REFUNDED: "REFUNDED",
}


def status_label(status: PaymentStatus) -> str:
    return STATUS_LABELS.get(PaymentStatus(status), "PENDING")


def find_registration(db: Session, registration_key: str) -> Optional[Registration]:
    """Look a registration up by storage id or by its human-readable id."""
    key = str(registration_key or "").strip()
    if not key:
        return None
    return (
        db.query(Registration)
        .filter(or_(Registration.id == key, Registration.registration_id == key))
        .first()
    )


def update_payment_status(
    db: Session,
    actor: Optional[User],
    registration_key: str,
    new_status: PaymentStatus,
    path: Optional[str] = None,
) -> Registration:
    require_role(actor, Role.ADMIN)
    new_status = PaymentStatus(new_status)

    registration = find_registration(db, registration_key)
    if not registration:
        raise NotFound("Registration not found")

    previous = registration.payment_status
    registration.payment_status = new_status
    registration.updated_at = now_utc()
    log_admin_action(
        db,
        actor,
        "update_payment_status",
        method="POST",
        path=path,
        meta={
            "registration_id": registration.registration_id,
            "from": previous.value,
            "to": new_status.value,
        },
        commit=False,
    )
    db.commit()
    db.refresh(registration)
    logger.info(
        "Payment status of %s changed %s -> %s by %s",
        registration.registration_id,
        previous.value,
        new_status.value,
        actor.email,
    )
    return registration


def delete_registration(
    db: Session,
    actor: Optional[User],
    registration_key: str,
    path: Optional[str] = None,
) -> None:
    require_role(actor, Role.ADMIN)

    registration = find_registration(db, registration_key)
    if not registration:
        raise NotFound("Registration not found")

    readable_id = registration.registration_id
    member_count = len(registration.team_members)
    db.delete(registration)
    log_admin_action(
        db,
        actor,
        "delete_registration",
        method="DELETE",
        path=path,
        meta={"registration_id": readable_id, "team_members": member_count},
        commit=False,
    )
    db.commit()
    logger.info("Registration %s deleted by %s", readable_id, actor.email)


def registrations_by_status(
    db: Session,
    status: PaymentStatus,
    event_id: Optional[int] = None,
) -> List[Registration]:
    """Registrations in one payment state, grouped by event then oldest first."""
    query = (
        db.query(Registration)
        .join(Event, Registration.event_id == Event.id)
        .options(
            joinedload(Registration.user),
            joinedload(Registration.event),
            selectinload(Registration.team_members),
        )
        .filter(Registration.payment_status == PaymentStatus(status))
    )
    if event_id is not None:
        query = query.filter(Registration.event_id == event_id)
    return query.order_by(Event.title.asc(), Event.id.asc(), Registration.created_at.asc(), Registration.id.asc()).all()
