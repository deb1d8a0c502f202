from datetime import date, datetime, timezone

from admission import register_for_event
from analytics import category_totals, event_analytics, registration_trends, top_events
from models import EventCategory, PaymentStatus

TEAM_OF_FOUR = [
    {"name": f"Mate {i}", "usn": f"1XX20IS{i:03d}", "phone": f"98000000{i:02d}"} for i in range(1, 4)
]


def _team_event(make_event, **fields):
    values = dict(
        title="Hackathon",
        category=EventCategory.TECHNICAL,
        fee=500,
        is_team_event=True,
        min_team_size=2,
        max_team_size=4,
    )
    values.update(fields)
    return make_event(**values)


def test_paid_team_registration_counts_fee_per_member(db, make_user, make_event):
    event = _team_event(make_event)
    paid = register_for_event(db, make_user(), event.id, team_members=TEAM_OF_FOUR)
    register_for_event(db, make_user(), event.id, team_members=TEAM_OF_FOUR)
    paid.payment_status = PaymentStatus.PAID
    db.commit()

    (technical,) = category_totals(db)
    assert technical.category.value == "TECHNICAL"
    assert technical.total == 2
    assert technical.paid == 1
    assert technical.unpaid == 1
    assert technical.revenue == 2000


def test_unpaid_and_refunded_registrations_earn_nothing(db, make_user, make_event):
    event = _team_event(make_event)
    refunded = register_for_event(db, make_user(), event.id, team_members=TEAM_OF_FOUR)
    register_for_event(db, make_user(), event.id, team_members=TEAM_OF_FOUR)
    refunded.payment_status = PaymentStatus.REFUNDED
    db.commit()

    (technical,) = category_totals(db)
    assert technical.revenue == 0
    assert technical.refunded == 1


def test_individual_revenue_and_category_listing(db, make_user, make_event):
    solo = make_event(title="Sketching", category=EventCategory.FINEARTS, fee=150)
    make_event(title="Debate", category=EventCategory.LITERARY, fee=100)
    registration = register_for_event(db, make_user(), solo.id)
    registration.payment_status = PaymentStatus.PAID
    db.commit()

    totals = {item.category.value: item for item in category_totals(db)}
    assert set(totals) == {"FINEARTS", "LITERARY"}
    assert totals["FINEARTS"].revenue == 150
    assert totals["LITERARY"].total == 0
    assert totals["LITERARY"].revenue == 0


def test_trends_group_by_local_day_newest_first(db, make_user, make_event):
    event = make_event(capacity=10)
    stamps = [
        datetime(2026, 3, 1, 4, 0, tzinfo=timezone.utc),    # 1 Mar IST
        datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc),   # 2 Mar 01:30 IST
        datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc),   # 2 Mar IST
        datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc),   # 5 Mar IST
    ]
    for stamp in stamps:
        registration = register_for_event(db, make_user(), event.id)
        registration.created_at = stamp
    db.commit()

    trends = registration_trends(db, days=7)
    assert [(point.date, point.count) for point in trends] == [
        (date(2026, 3, 5), 1),
        (date(2026, 3, 2), 2),
        (date(2026, 3, 1), 1),
    ]
    assert [point.date for point in registration_trends(db, days=2)] == [date(2026, 3, 5), date(2026, 3, 2)]


def test_top_events_rank_by_count_then_title(db, make_user, make_event):
    busy = make_event(title="Zumba")
    tied_b = make_event(title="Beatbox")
    tied_a = make_event(title="Antakshari")
    make_event(title="Empty Hall")
    for _ in range(3):
        register_for_event(db, make_user(), busy.id)
    register_for_event(db, make_user(), tied_b.id)
    register_for_event(db, make_user(), tied_a.id)

    ranked = top_events(db, limit=3)
    assert [(item.title, item.registrations) for item in ranked] == [
        ("Zumba", 3),
        ("Antakshari", 1),
        ("Beatbox", 1),
    ]


def test_event_analytics_combines_rollups(db, make_user, make_event):
    event = _team_event(make_event)
    registration = register_for_event(db, make_user(), event.id, team_members=TEAM_OF_FOUR)
    registration.payment_status = PaymentStatus.PAID
    db.commit()

    result = event_analytics(db, trend_days=7, top_limit=5)
    assert result.by_category[0].revenue == 2000
    assert result.top_events[0].revenue == 2000
    assert sum(point.count for point in result.trends) == 1
