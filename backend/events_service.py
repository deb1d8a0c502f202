import logging
import math
from typing import Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from errors import NotFound, ValidationError
from models import Event, EventCategory, Registration, Role, User
from schemas import EventCreate, EventListResponse, EventResponse, EventUpdate, PageMetadata
from security import require_role
from utils import log_admin_action

logger = logging.getLogger(__name__)

MAX_PUBLIC_PAGE_SIZE = 100
NULLABLE_FIELDS = {"description", "duration", "details", "image", "department_code", "min_team_size", "max_team_size"}


def _registration_count(db: Session, event_id: int) -> int:
    return db.query(func.count(Registration.id)).filter(Registration.event_id == event_id).scalar() or 0


def event_response(event: Event, registration_count: int = 0) -> EventResponse:
    response = EventResponse.model_validate(event)
    response.registration_count = registration_count
    response.seats_left = max(event.capacity - registration_count, 0)
    return response


def _normalize_team_sizes(event: Event) -> None:
    if not event.is_team_event:
        event.min_team_size = None
        event.max_team_size = None
        return
    errors = []
    if event.min_team_size is None:
        errors.append({"field": "min_team_size", "message": "Required for team events"})
    if event.max_team_size is None:
        errors.append({"field": "max_team_size", "message": "Required for team events"})
    if not errors and event.min_team_size > event.max_team_size:
        errors.append({"field": "max_team_size", "message": "Must be greater than or equal to min_team_size"})
    if errors:
        raise ValidationError("Invalid team size settings", errors=errors)


def list_public_events(
    db: Session,
    page: int = 1,
    limit: int = 10,
    category: Optional[Union[EventCategory, str]] = None,
    search: Optional[str] = None,
) -> EventListResponse:
    errors = []
    if page < 1:
        errors.append({"field": "page", "message": "Must be at least 1"})
    if limit < 1 or limit > MAX_PUBLIC_PAGE_SIZE:
        errors.append({"field": "limit", "message": f"Must be between 1 and {MAX_PUBLIC_PAGE_SIZE}"})
    if errors:
        raise ValidationError("Invalid pagination parameters", errors=errors)

    query = db.query(Event)
    if category:
        try:
            query = query.filter(Event.category == EventCategory(getattr(category, "value", category)))
        except ValueError:
            raise ValidationError("Invalid category", errors=[{"field": "category", "message": "Unknown category"}])
    term = (search or "").strip()
    if term:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        query = query.filter(or_(
            Event.title.ilike(pattern, escape="\\"),
            Event.description.ilike(pattern, escape="\\"),
        ))

    total = query.count()
    events = query.order_by(Event.date.desc(), Event.id.asc()).offset((page - 1) * limit).limit(limit).all()

    counts = {}
    if events:
        counts = dict(
            db.query(Registration.event_id, func.count(Registration.id))
            .filter(Registration.event_id.in_([event.id for event in events]))
            .group_by(Registration.event_id)
            .all()
        )
    return EventListResponse(
        data=[event_response(event, counts.get(event.id, 0)) for event in events],
        metadata=PageMetadata(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


def get_event_or_404(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFound("Event not found")
    return event


def get_event(db: Session, event_id: int) -> EventResponse:
    event = get_event_or_404(db, event_id)
    return event_response(event, _registration_count(db, event.id))


def create_event(db: Session, actor: Optional[User], data: EventCreate, path: Optional[str] = None) -> EventResponse:
    require_role(actor, Role.ADMIN)
    payload = data.model_dump()
    payload["category"] = EventCategory(payload["category"].value)
    event = Event(**payload)
    _normalize_team_sizes(event)
    db.add(event)
    db.flush()
    log_admin_action(db, actor, "create_event", method="POST", path=path, meta={"event_id": event.id, "title": event.title})
    db.refresh(event)
    logger.info("Event %s created by %s", event.id, actor.email)
    return event_response(event, 0)


def update_event(
    db: Session,
    actor: Optional[User],
    event_id: int,
    data: EventUpdate,
    path: Optional[str] = None,
) -> EventResponse:
    require_role(actor, Role.ADMIN)
    event = get_event_or_404(db, event_id)
    updates = data.model_dump(exclude_unset=True)
    for field, value in updates.items():
        if value is None and field not in NULLABLE_FIELDS:
            continue
        if field == "category":
            value = EventCategory(getattr(value, "value", value))
        setattr(event, field, value)
    try:
        _normalize_team_sizes(event)
    except ValidationError:
        db.rollback()
        raise
    log_admin_action(db, actor, "update_event", method="PUT", path=path, meta={"event_id": event.id, "fields": sorted(updates)})
    db.refresh(event)
    return event_response(event, _registration_count(db, event.id))


def delete_event(db: Session, actor: Optional[User], event_id: int, path: Optional[str] = None) -> None:
    require_role(actor, Role.ADMIN)
    event = get_event_or_404(db, event_id)
    title = event.title
    registrations = len(event.registrations)
    db.delete(event)
    log_admin_action(
        db,
        actor,
        "delete_event",
        method="DELETE",
        path=path,
        meta={"event_id": event_id, "title": title, "registrations": registrations},
    )
    logger.info("Event %s deleted by %s (%s registrations removed)", event_id, actor.email, registrations)
