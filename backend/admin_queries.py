"""Paginated, searchable, sortable listings for the admin back-office.

Sort keys are closed enums mapped to column expressions below; every ordering
ends on the primary key so repeated calls over unchanged data return the same
rows in the same order.
"""
import math
from typing import Dict, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from errors import ValidationError
from models import Event, EventCategory, PaymentStatus, Registration, TeamMember, User
from payments import status_label
from schemas import (
    AdminEventPage,
    AdminEventRow,
    AdminRegistrationPage,
    AdminRegistrationRow,
    EventSortKey,
    RegistrationSortKey,
    SortDirection,
)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

REGISTRATION_SORT_COLUMNS: Dict[RegistrationSortKey, object] = {
    RegistrationSortKey.CREATED_AT: Registration.created_at,
    RegistrationSortKey.REGISTRATION_ID: Registration.registration_id,
    RegistrationSortKey.USER_NAME: User.name,
    RegistrationSortKey.EVENT_TITLE: Event.title,
    RegistrationSortKey.PAYMENT_STATUS: Registration.payment_status,
}

EVENT_SORT_COLUMNS: Dict[EventSortKey, object] = {
    EventSortKey.DATE: Event.date,
    EventSortKey.TITLE: Event.title,
    EventSortKey.CATEGORY: Event.category,
    EventSortKey.FEE: Event.fee,
    EventSortKey.CREATED_AT: Event.created_at,
}


def _coerce_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(item.value for item in enum_cls)
        raise ValidationError(
            f"Invalid {field}",
            errors=[{"field": field, "message": f"Must be one of: {allowed}"}],
        )


def _check_paging(page: int, page_size: int) -> None:
    errors = []
    if page < 1:
        errors.append({"field": "page", "message": "Must be at least 1"})
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        errors.append({"field": "page_size", "message": f"Must be between 1 and {MAX_PAGE_SIZE}"})
    if errors:
        raise ValidationError("Invalid pagination parameters", errors=errors)


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _ordered(column, direction: SortDirection):
    return column.asc() if direction == SortDirection.ASC else column.desc()


def _total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


def list_registrations(
    db: Session,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    sort: Union[RegistrationSortKey, str] = RegistrationSortKey.CREATED_AT,
    direction: Union[SortDirection, str] = SortDirection.DESC,
    payment_status: Optional[Union[PaymentStatus, str]] = None,
    event_id: Optional[int] = None,
) -> AdminRegistrationPage:
    _check_paging(page, page_size)
    sort = _coerce_enum(RegistrationSortKey, sort, "sort")
    direction = _coerce_enum(SortDirection, direction, "direction")

    filters = []
    if payment_status is not None:
        filters.append(Registration.payment_status == _coerce_enum(PaymentStatus, payment_status, "payment_status"))
    if event_id is not None:
        filters.append(Registration.event_id == event_id)
    term = (search or "").strip()
    if term:
        pattern = _like_pattern(term)
        filters.append(or_(
            Registration.registration_id.ilike(pattern, escape="\\"),
            User.name.ilike(pattern, escape="\\"),
            User.usn.ilike(pattern, escape="\\"),
            Event.title.ilike(pattern, escape="\\"),
        ))

    total = (
        db.query(func.count(Registration.id))
        .join(User, Registration.user_id == User.id)
        .join(Event, Registration.event_id == Event.id)
        .filter(*filters)
        .scalar()
    ) or 0

    members = (
        db.query(TeamMember.registration_id.label("registration_id"), func.count(TeamMember.id).label("members"))
        .group_by(TeamMember.registration_id)
        .subquery()
    )
    rows = (
        db.query(Registration, User, Event, members.c.members)
        .join(User, Registration.user_id == User.id)
        .join(Event, Registration.event_id == Event.id)
        .outerjoin(members, members.c.registration_id == Registration.id)
        .filter(*filters)
        .order_by(_ordered(REGISTRATION_SORT_COLUMNS[sort], direction), Registration.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    items = []
    for registration, user, event, member_count in rows:
        items.append(AdminRegistrationRow(
            id=registration.id,
            registration_id=registration.registration_id,
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            user_usn=user.usn,
            user_college=user.college,
            user_phone=user.phone,
            event_id=event.id,
            event_title=event.title,
            event_category=event.category.value,
            event_date=event.date,
            event_fee=event.fee,
            is_team_event=bool(event.is_team_event),
            team_size=max(int(member_count or 0), 1),
            payment_status=registration.payment_status.value,
            status=status_label(registration.payment_status),
            created_at=registration.created_at,
            updated_at=registration.updated_at,
        ))

    return AdminRegistrationPage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=_total_pages(total, page_size),
    )


def list_events(
    db: Session,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    sort: Union[EventSortKey, str] = EventSortKey.DATE,
    direction: Union[SortDirection, str] = SortDirection.DESC,
    category: Optional[Union[EventCategory, str]] = None,
) -> AdminEventPage:
    _check_paging(page, page_size)
    sort = _coerce_enum(EventSortKey, sort, "sort")
    direction = _coerce_enum(SortDirection, direction, "direction")

    filters = []
    if category is not None:
        filters.append(Event.category == _coerce_enum(EventCategory, category, "category"))
    term = (search or "").strip()
    if term:
        pattern = _like_pattern(term)
        filters.append(or_(
            Event.title.ilike(pattern, escape="\\"),
            Event.location.ilike(pattern, escape="\\"),
        ))

    total = db.query(func.count(Event.id)).filter(*filters).scalar() or 0

    counts = (
        db.query(Registration.event_id.label("event_id"), func.count(Registration.id).label("registrations"))
        .group_by(Registration.event_id)
        .subquery()
    )
    registration_count = func.coalesce(counts.c.registrations, 0)
    sort_column = registration_count if sort == EventSortKey.REGISTRATIONS else EVENT_SORT_COLUMNS[sort]
    rows = (
        db.query(Event, registration_count)
        .outerjoin(counts, counts.c.event_id == Event.id)
        .filter(*filters)
        .order_by(_ordered(sort_column, direction), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    items = [
        AdminEventRow(
            id=event.id,
            title=event.title,
            description=event.description,
            category=event.category.value,
            date=event.date,
            time=event.time,
            location=event.location,
            capacity=event.capacity,
            fee=event.fee,
            is_team_event=bool(event.is_team_event),
            registration_open=bool(event.registration_open),
            registration_count=int(count or 0),
        )
        for event, count in rows
    ]
    return AdminEventPage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=_total_pages(total, page_size),
    )
