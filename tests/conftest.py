"""Shared fixtures: in-memory database, seeded clinics, isolated app instances."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinicbook.models import Base, Clinic, OperatingHours, Service

MANILA = "Asia/Manila"

# Monday 2026-03-02 09:00 in Manila
MONDAY_0900_MANILA = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)


def weekday_hours(clinic_id):
    """Mon-Fri 09:00-17:00, weekend closed"""
    rows = [
        OperatingHours(clinic_id=clinic_id, day_of_week=day, open_time="09:00", close_time="17:00")
        for day in range(5)
    ]
    rows += [
        OperatingHours(clinic_id=clinic_id, day_of_week=day, open_time="00:00", close_time="00:00", is_closed=True)
        for day in (5, 6)
    ]
    return rows


def next_clinic_weekday(tz_name=MANILA, min_days_ahead=2):
    """A Mon-Fri clinic-local date a few days from today, inside the advance window"""
    candidate = datetime.now(ZoneInfo(tz_name)).date() + timedelta(days=min_days_ahead)
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


def local_instant(local_date: date, hhmm: str, tz_name=MANILA) -> datetime:
    hours, minutes = (int(part) for part in hhmm.split(":"))
    local = datetime(local_date.year, local_date.month, local_date.day, hours, minutes, tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)


def iso_z(instant: datetime) -> str:
    return instant.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clinic(db_session):
    """Manila clinic, 30 minute consultation, step 15, lead 60, advance 30"""
    clinic = Clinic(
        slug="sunrise-clinic",
        name="Sunrise Family Clinic",
        timezone=MANILA,
        currency="PHP",
        lead_time_minutes=60,
        max_advance_days=30,
        slot_step_minutes=15,
    )
    db_session.add(clinic)
    db_session.flush()
    db_session.add_all(weekday_hours(clinic.id))
    db_session.commit()
    return clinic


@pytest.fixture
def service(db_session, clinic):
    service = Service(clinic_id=clinic.id, name="General Consultation", duration_minutes=30, price=800)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture
def other_clinic(db_session):
    clinic = Clinic(slug="harbor-clinic", name="Harbor Dental", timezone="UTC")
    db_session.add(clinic)
    db_session.flush()
    db_session.add_all(weekday_hours(clinic.id))
    db_session.commit()
    return clinic


@pytest.fixture
def other_service(db_session, other_clinic):
    service = Service(clinic_id=other_clinic.id, name="Cleaning", duration_minutes=45)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture
def email_sender():
    sender = MagicMock(name="email_sender")
    sender.return_value = {"providerMessageId": "<msg-1@clinicbook.local>"}
    return sender


@pytest.fixture
def sms_sender():
    sender = MagicMock(name="sms_sender")
    sender.return_value = {"providerMessageId": "SM123"}
    return sender


@pytest.fixture
def notification_guard(email_sender, sms_sender):
    from clinicbook.services.notification.notification_service import NotificationAdmissionGuard

    return NotificationAdmissionGuard(daily_cap=3, email_sender=email_sender, sms_sender=sms_sender)


@pytest.fixture
def confirmation_enqueuer():
    return MagicMock(name="confirmation_enqueuer")


@pytest.fixture
def app(db_session, confirmation_enqueuer):
    from clinicbook.config.database import get_db
    from clinicbook.main import create_app
    from clinicbook.services.booking.idempotency_store import InMemoryIdempotencyStore

    app = create_app(
        idempotency_store=InMemoryIdempotencyStore(),
        confirmation_enqueuer=confirmation_enqueuer,
        create_schema=False,
    )
    app.dependency_overrides[get_db] = lambda: db_session
    return app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Build bearer headers for a clinic, as the identity provider would"""
    from clinicbook.api.dependencies import create_access_token

    def _headers(clinic_id, user_id="staff-1", role="ADMIN"):
        token = create_access_token({"sub": user_id, "clinic_id": clinic_id, "role": role})
        return {"Authorization": f"Bearer {token}"}

    return _headers
