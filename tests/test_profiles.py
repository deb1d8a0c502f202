import pytest

from admission import register_for_event
from errors import ConflictError
from profiles import compute_profile_completed, profile_summary, update_profile
from schemas import ProfileUpdate

COMPLETE = dict(department="CSE", college="X", phone="9876543210", usn="1XX20CS001")


def test_complete_profile_is_detected():
    assert compute_profile_completed(**COMPLETE) is True


@pytest.mark.parametrize("field", sorted(COMPLETE))
def test_clearing_any_field_marks_profile_incomplete(field):
    assert compute_profile_completed(**{**COMPLETE, field: None}) is False
    assert compute_profile_completed(**{**COMPLETE, field: ""}) is False
    assert compute_profile_completed(**{**COMPLETE, field: "   "}) is False


def test_update_profile_recomputes_completion(db, make_user):
    user = make_user(complete=False)
    assert user.profile_completed is False

    user = update_profile(db, user, ProfileUpdate(**COMPLETE, name=" Asha "))
    assert user.profile_completed is True
    assert user.name == "Asha"
    assert user.usn == "1XX20CS001"

    user = update_profile(db, user, ProfileUpdate(college="   "))
    assert user.college is None
    assert user.profile_completed is False


def test_update_profile_leaves_unset_fields_alone(db, make_user):
    user = make_user()
    user = update_profile(db, user, ProfileUpdate(semester=4, needs_accommodation=True))
    assert user.semester == 4
    assert user.needs_accommodation is True
    assert user.college == "X"
    assert user.profile_completed is True


def test_usn_is_normalized_and_unique(db, make_user):
    first = make_user(complete=False)
    second = make_user(complete=False)
    first = update_profile(db, first, ProfileUpdate(usn=" 1xx20cs777 "))
    assert first.usn == "1XX20CS777"

    with pytest.raises(ConflictError):
        update_profile(db, second, ProfileUpdate(usn="1xx20CS777"))

    # Re-saving your own USN is fine.
    first = update_profile(db, first, ProfileUpdate(usn="1XX20CS777"))
    assert first.usn == "1XX20CS777"


def test_usn_conflict_leaves_no_pending_changes(db, make_user):
    first = make_user()
    second = make_user()
    original_name = second.name
    original_college = second.college

    with pytest.raises(ConflictError):
        update_profile(db, second, ProfileUpdate(name="Changed", college="Other College", usn=first.usn))

    db.commit()
    db.expire_all()
    assert second.name == original_name
    assert second.college == original_college
    assert second.usn != first.usn


def test_profile_summary_lists_registrations(db, make_user, make_event):
    user = make_user()
    older = make_event(title="Poetry Slam")
    newer = make_event(title="Street Play")
    register_for_event(db, user, older.id)
    register_for_event(db, user, newer.id)

    summary = profile_summary(db, user)
    assert summary.profile_completed is True
    assert {item.event_name for item in summary.registrations} == {"Poetry Slam", "Street Play"}
    assert all(item.payment_status.value == "UNPAID" for item in summary.registrations)
