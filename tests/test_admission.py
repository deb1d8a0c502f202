import threading

import pytest

from admission import list_user_registrations, register_for_event
from errors import (
    DuplicateRegistration,
    EventFull,
    InvalidTeamMember,
    InvalidTeamSize,
    NotFound,
    ProfileIncomplete,
    RegistrationClosed,
    Unauthenticated,
)
from models import EventCategory, PaymentStatus, Registration, TeamMember, User


def _members(count):
    return [
        {"name": f"Member {i}", "usn": f"1XX20EC{i:03d}", "phone": f"90000000{i:02d}"}
        for i in range(1, count + 1)
    ]


def test_individual_registration_is_unpaid_with_readable_id(db, make_user, make_event):
    user = make_user()
    event = make_event(event_id=7, category=EventCategory.CULTURAL)

    registration = register_for_event(db, user, event.id, notes="  vegetarian lunch ")

    assert registration.registration_id == "INS-CUL-07-10001"
    assert registration.payment_status == PaymentStatus.UNPAID
    assert registration.notes == "vegetarian lunch"
    assert registration.team_members == []


def test_anonymous_user_is_rejected(db, make_event):
    with pytest.raises(Unauthenticated):
        register_for_event(db, None, make_event().id)


def test_incomplete_profile_carries_continuation(db, make_user, make_event):
    user = make_user(complete=False)
    event = make_event(is_team_event=True, min_team_size=2, max_team_size=4)

    with pytest.raises(ProfileIncomplete) as exc_info:
        register_for_event(db, user, event.id)

    payload = exc_info.value.to_payload()
    assert payload["code"] == "INCOMPLETE_PROFILE"
    assert payload["redirect"] == "/profile"
    assert payload["callback_url"] == f"/events/{event.id}?register=true&team=true"
    assert payload["event_id"] == event.id


def test_whitespace_profile_counts_as_incomplete(db, make_user, make_event):
    user = make_user(phone="   ")
    with pytest.raises(ProfileIncomplete):
        register_for_event(db, user, make_event().id)


def test_profile_check_runs_before_event_state_checks(db, make_user, make_event):
    user = make_user(complete=False)
    event = make_event(registration_open=False)
    with pytest.raises(ProfileIncomplete):
        register_for_event(db, user, event.id)


def test_second_registration_for_same_event_is_rejected(db, make_user, make_event):
    user = make_user()
    event = make_event()
    register_for_event(db, user, event.id)
    with pytest.raises(DuplicateRegistration):
        register_for_event(db, user, event.id)
    assert db.query(Registration).count() == 1


def test_unknown_event_is_not_found(db, make_user):
    with pytest.raises(NotFound):
        register_for_event(db, make_user(), 999)


def test_closed_event_rejects_registration(db, make_user, make_event):
    event = make_event(registration_open=False)
    with pytest.raises(RegistrationClosed):
        register_for_event(db, make_user(), event.id)


def test_full_event_rejects_registration(db, make_user, make_event):
    event = make_event(capacity=1)
    register_for_event(db, make_user(), event.id)
    with pytest.raises(EventFull):
        register_for_event(db, make_user(), event.id)
    assert db.query(Registration).filter(Registration.event_id == event.id).count() == 1


@pytest.mark.parametrize("extra_members", [0, 5])
def test_team_size_outside_bounds_is_rejected(db, make_user, make_event, extra_members):
    event = make_event(is_team_event=True, min_team_size=2, max_team_size=5)
    with pytest.raises(InvalidTeamSize):
        register_for_event(db, make_user(), event.id, team_members=_members(extra_members))
    assert db.query(Registration).count() == 0
    assert db.query(TeamMember).count() == 0


@pytest.mark.parametrize("extra_members", [1, 2, 3, 4])
def test_team_size_within_bounds_is_accepted(db, make_user, make_event, extra_members):
    event = make_event(is_team_event=True, min_team_size=2, max_team_size=5)
    user = make_user()

    registration = register_for_event(db, user, event.id, team_members=_members(extra_members))

    roster = registration.team_members
    assert len(roster) == extra_members + 1
    assert roster[0].is_leader is True
    assert roster[0].usn == user.usn
    assert [m.position for m in roster] == list(range(extra_members + 1))


def test_members_on_individual_event_are_rejected(db, make_user, make_event):
    event = make_event(is_team_event=False)
    with pytest.raises(InvalidTeamSize):
        register_for_event(db, make_user(), event.id, team_members=_members(1))


def test_blank_member_fields_are_rejected_atomically(db, make_user, make_event):
    event = make_event(is_team_event=True, min_team_size=2, max_team_size=4)
    members = _members(2)
    members[1]["phone"] = "   "
    with pytest.raises(InvalidTeamMember):
        register_for_event(db, make_user(), event.id, team_members=members)
    assert db.query(Registration).count() == 0
    assert db.query(TeamMember).count() == 0


def test_list_user_registrations(db, make_user, make_event):
    user = make_user()
    event = make_event(title="Quiz", is_team_event=True, min_team_size=2, max_team_size=3)
    register_for_event(db, user, event.id, team_members=_members(2))

    rows = list_user_registrations(db, user)
    assert len(rows) == 1
    assert rows[0].event_name == "Quiz"
    assert rows[0].team_size == 3


def test_concurrent_duplicate_admission_only_one_succeeds(session_factory, make_user, make_event):
    user_id = make_user().id
    event_id = make_event().id
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        session = session_factory()
        try:
            user = session.query(User).filter(User.id == user_id).one()
            barrier.wait()
            registration = register_for_event(session, user, event_id)
            outcome = ("ok", registration.registration_id)
        except DuplicateRegistration:
            outcome = ("duplicate", None)
        except Exception as exc:
            outcome = ("error", repr(exc))
        finally:
            session.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(kind for kind, _ in outcomes) == ["duplicate", "ok"]

    check = session_factory()
    try:
        assert check.query(Registration).filter(Registration.user_id == user_id).count() == 1
    finally:
        check.close()
