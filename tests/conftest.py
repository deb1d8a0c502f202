from datetime import datetime, timezone
from pathlib import Path
import os
import sys
import tempfile

import pytest

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

_DB_DIR = tempfile.mkdtemp(prefix="fest-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'fest.db'}"
os.environ["JWT_SECRET_KEY"] = "fest-test-secret-0123456789abcdefghijklmnop"
os.environ["APP_ENV"] = "test"
os.environ["APP_TIMEZONE"] = "Asia/Kolkata"
os.environ["ADMIN_EMAILS"] = "admin@fest.test"
os.environ["GOOGLE_CLIENT_ID"] = "fest-test-client"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from database import Base, SessionLocal, engine  # noqa: E402
from identity import create_user, seed_user_sequence  # noqa: E402
from models import Event, EventCategory, Role  # noqa: E402


@pytest.fixture
def session_factory():
    Base.metadata.create_all(bind=engine)
    seed = SessionLocal()
    try:
        seed_user_sequence(seed)
    finally:
        seed.close()
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


COMPLETE_PROFILE = {
    "department": "CSE",
    "college": "X",
    "phone": "9876543210",
}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(email=None, role=Role.USER, complete=True, **fields):
        counter["n"] += 1
        user = create_user(db, email or f"user{counter['n']}@fest.test", name=f"User {counter['n']}", role=role)
        if complete:
            for key, value in COMPLETE_PROFILE.items():
                setattr(user, key, value)
            user.usn = f"1XX20CS{counter['n']:03d}"
            user.profile_completed = True
        for key, value in fields.items():
            setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@fest.test", role=Role.ADMIN)


@pytest.fixture
def make_event(db):
    def _make_event(event_id=None, **fields):
        values = {
            "title": "Battle of Bands",
            "description": "Live music showdown between college bands",
            "category": EventCategory.CULTURAL,
            "date": datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc),
            "time": "10:00 AM",
            "location": "Main Stage",
            "capacity": 50,
            "fee": 200,
            "details": "Bring your own instruments",
            "registration_open": True,
            "is_team_event": False,
        }
        values.update(fields)
        if event_id is not None:
            values["id"] = event_id
        event = Event(**values)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make_event
