"""
Shared test fixtures.

Provides: in-memory MongoDB (mongomock) with the production indexes,
a controllable clock, recording email senders, user factories and an
HTTP client wired to the same database.
"""

from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from alumni_portal.api.deps import get_clock
from alumni_portal.core.auth import create_access_token
from alumni_portal.db.mongodb import COLLECTIONS, get_database, init_mongo_indexes
from alumni_portal.main import app
from alumni_portal.services.email_service import EmailSender, get_email_sender
from alumni_portal.services.session_service import SessionLifecycleService
from alumni_portal.services.attendance_service import AttendanceService

NOW = datetime(2026, 10, 17, 10, 30)


class FakeClock:
    """Callable clock whose time tests can move."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingEmailSender(EmailSender):

    def __init__(self):
        self.sent = []

    def send(self, to: str, template: str, params: dict) -> None:
        self.sent.append((to, template, params))


class FailingEmailSender(EmailSender):

    def send(self, to: str, template: str, params: dict) -> None:
        raise ConnectionError("SMTP unavailable")


@pytest.fixture
def db():
    database = mongomock.MongoClient()["alumni_portal_test"]
    init_mongo_indexes(database)
    return database


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def make_user(db):
    """Factory inserting a user document and returning it."""
    counter = {"n": 0}

    def _make(role="student", year_of_study=None, department=None, full_name=None, **extra):
        counter["n"] += 1
        doc = {
            "full_name": full_name or f"{role.title()} {counter['n']}",
            "email": f"{role}{counter['n']}@rgukt.ac.in",
            "role": role,
            "is_active": True,
            **extra,
        }
        if year_of_study:
            doc["year_of_study"] = year_of_study
        if department:
            doc["department"] = department
        doc["_id"] = db[COLLECTIONS["users"]].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", full_name="Admin One")


@pytest.fixture
def alumni(make_user):
    return make_user("alumni", full_name="Asha Alumni")


@pytest.fixture
def service(db, clock, email_sender):
    return SessionLifecycleService(db=db, email_sender=email_sender, clock=clock)


@pytest.fixture
def attendance_service(db, clock):
    return AttendanceService(db=db, clock=clock)


@pytest.fixture
def request_payload():
    def _payload(**overrides):
        payload = {
            "session_title": "Cracking Product Interviews",
            "session_description": "How to prepare for product company interviews",
            "session_type": "career",
            "target_audience": ["E-2"],
            "target_departments": ["CSE"],
            "preferred_date": "2026-10-20",
            "preferred_time": "15:00",
            "session_mode": "offline",
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def client(db, clock, email_sender):
    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(user: dict) -> dict:
    token = create_access_token({"sub": str(user["_id"]), "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


def notifications_for(db, user: dict) -> list:
    return list(db[COLLECTIONS["notifications"]].find({"recipient": user["_id"]}))
