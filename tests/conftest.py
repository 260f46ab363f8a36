import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Set testing environment variable before the app reads its settings
os.environ["TESTING"] = "1"

from clinic_booking.api.deps import (
    booking_rate_limit, get_clock, get_notifier, get_payment_gateway
)
from clinic_booking.core.clock import FixedClock
from clinic_booking.core.database import Base, get_db, make_engine
from clinic_booking.core.exceptions import NotificationFailure
from clinic_booking.core.security import UserRole, create_user_token
from clinic_booking.main import app
from clinic_booking.models import Doctor, User
from clinic_booking.services.appointment_service import AppointmentService
from clinic_booking.services.notification_service import NotificationSink

# 19 October 2026 is a Monday
TODAY = datetime(2026, 10, 19, 9, 0)


class RecordingNotifier(NotificationSink):
    """Keeps every email instead of sending it."""

    def __init__(self):
        self.sent = []

    def deliver(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})


class FailingNotifier(NotificationSink):
    def __init__(self):
        self.attempts = 0

    def deliver(self, to, subject, html):
        self.attempts += 1
        raise NotificationFailure(f"SMTP delivery to {to} failed: connection refused")


def auth_headers(user: User) -> dict:
    token = create_user_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()

@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def clock():
    return FixedClock(TODAY)

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def service(db, notifier, clock):
    return AppointmentService(db, notifier=notifier, clock=clock)

@pytest.fixture
def make_user(db):
    counter = iter(range(1, 10000))

    def _make_user(role: UserRole = UserRole.PATIENT, **overrides) -> User:
        n = next(counter)
        data = {
            "email": f"{role.value}{n}@example.com",
            "role": role,
            "first_name": "Test",
            "last_name": f"User{n}",
            "phone_number": "555-0100",
        }
        data.update(overrides)
        user = User(**data)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user

@pytest.fixture
def make_doctor(db):
    counter = iter(range(1, 10000))

    def _make_doctor(**overrides) -> Doctor:
        n = next(counter)
        data = {
            "name": f"Dr. Test {n}",
            "email": f"doctor{n}@clinic.example.com",
            "speciality": "General_Physician",
            "degree": "MBBS",
            "experience": "4 Years",
            "fees": 500.0,
            "address": {"line1": "1 Main Street", "line2": "Springfield"},
            "available": True,
            "day_off": "",
            "slots_booked": {},
        }
        data.update(overrides)
        doctor = Doctor(**data)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    return _make_doctor

@pytest.fixture
def client(session_factory, clock, notifier):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: None
    app.dependency_overrides[booking_rate_limit] = lambda: None

    yield TestClient(app, base_url="http://testserver")

    app.dependency_overrides.clear()

@pytest.fixture
def failing_notifier():
    return FailingNotifier()

@pytest.fixture(name="auth_headers")
def auth_headers_fixture():
    return auth_headers
