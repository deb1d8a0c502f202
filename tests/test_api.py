import pytest
from fastapi.testclient import TestClient

from auth import create_access_token, token_claims
from bootstrap import missing_tables
from database import Base, engine
from models import EventCategory, Registration
from server import app


@pytest.fixture
def client(session_factory):
    return TestClient(app)


def _auth(user):
    return {"Authorization": f"Bearer {create_access_token(token_claims(user))}"}


EVENT_PAYLOAD = {
    "title": "Code Relay",
    "description": "Relay-style team programming contest",
    "category": "TECHNICAL",
    "date": "2026-03-15T09:30:00+05:30",
    "time": "9:30 AM",
    "location": "Lab Block 2",
    "capacity": 40,
    "fee": 500,
    "details": "Teams of two to four; laptops provided",
    "is_team_event": True,
    "min_team_size": 2,
    "max_team_size": 4,
}


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_startup_creates_schema(session_factory):
    Base.metadata.drop_all(bind=engine)
    assert missing_tables()

    with TestClient(app) as started:
        assert started.get("/api/health").status_code == 200
        assert missing_tables() == []


def test_google_sign_in_issues_tokens(client, monkeypatch):
    monkeypatch.setattr(
        "routers.auth_user.verify_google_credential",
        lambda credential: {"email": "admin@fest.test", "name": "Fest Admin", "image": None},
    )
    response = client.post("/api/auth/google", json={"credential": "google-id-token"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["numeric_id"] == 10001
    assert body["user"]["role"] == "ADMIN"
    assert body["user"]["profile_completed"] is False

    me = client.get("/api/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["email"] == "admin@fest.test"

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["user"]["id"] == body["user"]["id"]


def test_refresh_rejects_access_tokens(client, make_user):
    user = make_user()
    token = create_access_token(token_claims(user))
    response = client.post("/api/auth/refresh", json={"refresh_token": token})
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"


def test_register_requires_authentication(client, make_event):
    response = client.post(f"/api/events/{make_event().id}/register", json={})
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"


def test_incomplete_profile_gets_continuation(client, make_user, make_event):
    user = make_user(complete=False)
    event = make_event()
    response = client.post(f"/api/events/{event.id}/register", json={}, headers=_auth(user))
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INCOMPLETE_PROFILE"
    assert body["callback_url"] == f"/events/{event.id}?register=true&team=false"


def test_profile_update_flow(client, make_user):
    user = make_user(complete=False)
    response = client.put(
        "/api/profile",
        json={"department": "CSE", "college": "X", "phone": "9876543210", "usn": "1xx20cs001"},
        headers=_auth(user),
    )
    assert response.status_code == 200
    assert response.json()["profile_completed"] is True
    assert response.json()["usn"] == "1XX20CS001"

    response = client.put("/api/profile", json={"department": "  "}, headers=_auth(user))
    assert response.json()["profile_completed"] is False


def test_registration_and_duplicate(client, db, make_user, make_event):
    user = make_user()
    event = make_event(event_id=7, category=EventCategory.CULTURAL)

    response = client.post(f"/api/events/{event.id}/register", json={"notes": "first"}, headers=_auth(user))
    assert response.status_code == 201
    assert response.json()["registration_id"] == "INS-CUL-07-10001"
    assert response.json()["payment_status"] == "UNPAID"

    again = client.post(f"/api/events/{event.id}/register", json={}, headers=_auth(user))
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_REGISTERED"

    mine = client.get("/api/me/registrations", headers=_auth(user)).json()
    assert [row["registration_id"] for row in mine] == ["INS-CUL-07-10001"]


def test_team_size_errors_are_reported(client, make_user, make_event):
    event = make_event(is_team_event=True, min_team_size=2, max_team_size=5)
    response = client.post(f"/api/events/{event.id}/register", json={"team_members": []}, headers=_auth(make_user()))
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TEAM_SIZE"


def test_admin_routes_reject_regular_users(client, make_user):
    user = make_user()
    for method, path in [
        ("get", "/api/admin/registrations"),
        ("get", "/api/admin/analytics"),
        ("get", "/api/admin/events"),
        ("delete", "/api/admin/registrations/anything"),
    ]:
        response = getattr(client, method)(path, headers=_auth(user))
        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED"
    assert client.get("/api/admin/analytics").status_code == 401


def test_admin_event_lifecycle_and_payment(client, db, admin, make_user):
    created = client.post("/api/admin/events", json=EVENT_PAYLOAD, headers=_auth(admin))
    assert created.status_code == 201
    event_id = created.json()["id"]

    participant = make_user()
    team = [{"name": f"Mate {i}", "usn": f"1XX20IS{i:03d}", "phone": f"98000000{i:02d}"} for i in range(1, 4)]
    registered = client.post(f"/api/events/{event_id}/register", json={"team_members": team}, headers=_auth(participant))
    assert registered.status_code == 201
    reg_id = registered.json()["registration_id"]
    assert len(registered.json()["team_members"]) == 4

    paid = client.post(
        "/api/admin/update-payment",
        json={"id": reg_id, "payment_status": "PAID"},
        headers=_auth(admin),
    )
    assert paid.status_code == 200

    analytics = client.get("/api/admin/analytics", headers=_auth(admin)).json()
    assert analytics["by_category"] == [
        {"category": "TECHNICAL", "total": 1, "paid": 1, "unpaid": 0, "refunded": 0, "revenue": 2000}
    ]

    listing = client.get("/api/admin/registrations", params={"search": "code relay"}, headers=_auth(admin)).json()
    assert listing["total"] == 1
    assert listing["items"][0]["status"] == "CONFIRMED"
    assert listing["items"][0]["team_size"] == 4

    export = client.get("/api/admin/download-registrations", params={"event_id": event_id}, headers=_auth(admin))
    assert export.status_code == 200
    assert export.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )

    logs = client.get("/api/admin/logs", headers=_auth(admin)).json()
    assert {entry["action"] for entry in logs} >= {"create_event", "update_payment_status"}

    deleted = client.delete(f"/api/admin/events/{event_id}", headers=_auth(admin))
    assert deleted.status_code == 200
    db.expire_all()
    assert db.query(Registration).count() == 0


def test_admin_event_update_validates_team_sizes(client, admin):
    event_id = client.post("/api/admin/events", json=EVENT_PAYLOAD, headers=_auth(admin)).json()["id"]
    response = client.put(
        f"/api/admin/events/{event_id}",
        json={"min_team_size": 5, "max_team_size": 3},
        headers=_auth(admin),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"

    response = client.put(f"/api/admin/events/{event_id}", json={"capacity": 60}, headers=_auth(admin))
    assert response.status_code == 200
    assert response.json()["capacity"] == 60


def test_admin_listing_rejects_bad_paging(client, admin):
    response = client.get("/api/admin/registrations", params={"page_size": 500}, headers=_auth(admin))
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["errors"][0]["field"] == "page_size"


def test_request_body_validation_uses_error_shape(client, admin):
    response = client.post("/api/admin/events", json={"title": "x"}, headers=_auth(admin))
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert response.json()["errors"]


def test_public_event_listing(client, make_event):
    make_event(title="Drama Night", category=EventCategory.CULTURAL)
    make_event(title="Essay Writing", category=EventCategory.LITERARY)
    body = client.get("/api/events", params={"category": "LITERARY"}).json()
    assert [item["title"] for item in body["data"]] == ["Essay Writing"]
    assert body["metadata"] == {"total": 1, "page": 1, "limit": 10, "total_pages": 1}


def test_delete_registration_by_readable_id(client, db, admin, make_user, make_event):
    event = make_event()
    response = client.post(f"/api/events/{event.id}/register", json={}, headers=_auth(make_user()))
    reg_id = response.json()["registration_id"]

    deleted = client.delete(f"/api/admin/registrations/{reg_id}", headers=_auth(admin))
    assert deleted.status_code == 200
    missing = client.delete(f"/api/admin/registrations/{reg_id}", headers=_auth(admin))
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"
