from collections import Counter
from typing import List

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from models import Event, EventCategory, PaymentStatus, Registration, TeamMember
from schemas import AnalyticsResponse, CategoryTotals, TopEvent, TrendPoint
from time_utils import local_date

CATEGORY_ORDER = list(EventCategory)


def _member_counts_subquery(db: Session):
    return (
        db.query(TeamMember.registration_id.label("registration_id"), func.count(TeamMember.id).label("members"))
        .group_by(TeamMember.registration_id)
        .subquery()
    )


def _revenue_expr(members):
    """Per-registration revenue: PAID only, fee times team size for team events."""
    is_paid = Registration.payment_status == PaymentStatus.PAID
    return case(
        (and_(is_paid, Event.is_team_event.is_(True)), Event.fee * func.coalesce(members, 1)),
        (is_paid, Event.fee),
        else_=0,
    )


def _status_count(status: PaymentStatus):
    return func.coalesce(func.sum(case((Registration.payment_status == status, 1), else_=0)), 0)


def category_totals(db: Session) -> List[CategoryTotals]:
    members = _member_counts_subquery(db)
    rows = (
        db.query(
            Event.category,
            func.count(Registration.id),
            _status_count(PaymentStatus.PAID),
            _status_count(PaymentStatus.UNPAID),
            _status_count(PaymentStatus.REFUNDED),
            func.coalesce(func.sum(_revenue_expr(members.c.members)), 0),
        )
        .select_from(Event)
        .outerjoin(Registration, Registration.event_id == Event.id)
        .outerjoin(members, members.c.registration_id == Registration.id)
        .group_by(Event.category)
        .all()
    )
    totals = [
        CategoryTotals(
            category=category.value,
            total=int(total or 0),
            paid=int(paid or 0),
            unpaid=int(unpaid or 0),
            refunded=int(refunded or 0),
            revenue=int(revenue or 0),
        )
        for category, total, paid, unpaid, refunded, revenue in rows
    ]
    return sorted(totals, key=lambda item: CATEGORY_ORDER.index(EventCategory(item.category.value)))


def registration_trends(db: Session, days: int = 7) -> List[TrendPoint]:
    """Registration counts for the ``days`` most recent calendar days that saw any."""
    if days <= 0:
        return []
    # Day bucketing happens in Python so the APP_TIMEZONE boundary is the same on
    # SQLite and PostgreSQL. Cost is one timestamp column scan over every registration.
    counts = Counter(local_date(created_at) for (created_at,) in db.query(Registration.created_at).all())
    recent = sorted(counts.items(), key=lambda item: item[0], reverse=True)[:days]
    return [TrendPoint(date=day, count=count) for day, count in recent]


def top_events(db: Session, limit: int = 5) -> List[TopEvent]:
    if limit <= 0:
        return []
    members = _member_counts_subquery(db)
    registrations = func.count(Registration.id).label("registrations")
    rows = (
        db.query(
            Event.id,
            Event.title,
            Event.category,
            registrations,
            func.coalesce(func.sum(_revenue_expr(members.c.members)), 0),
        )
        .select_from(Event)
        .outerjoin(Registration, Registration.event_id == Event.id)
        .outerjoin(members, members.c.registration_id == Registration.id)
        .group_by(Event.id, Event.title, Event.category)
        .order_by(registrations.desc(), Event.title.asc(), Event.id.asc())
        .limit(limit)
        .all()
    )
    return [
        TopEvent(
            event_id=event_id,
            title=title,
            category=category.value,
            registrations=int(count or 0),
            revenue=int(revenue or 0),
        )
        for event_id, title, category, count, revenue in rows
    ]


def event_analytics(db: Session, trend_days: int = 7, top_limit: int = 5) -> AnalyticsResponse:
    return AnalyticsResponse(
        by_category=category_totals(db),
        trends=registration_trends(db, trend_days),
        top_events=top_events(db, top_limit),
    )
