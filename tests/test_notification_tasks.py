"""Tests for the confirmation and reminder jobs run by the worker."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from clinicbook.core.results import ErrorCode
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models import Appointment, Patient
from clinicbook.models.notification import Notification
from clinicbook.services.notification.notification_service import NotificationAdmissionGuard
from clinicbook.tasks import notification_tasks
from clinicbook.tasks.notification_tasks import (
    deliver_booking_confirmation,
    dispatch_due_reminders,
    enqueue_booking_confirmation,
    format_appointment_label,
    send_appointment_reminders,
    send_booking_confirmation,
)

NOW = datetime(2026, 3, 2, 1, 0, tzinfo=timezone.utc)


@pytest.fixture
def tenant_db(db_session, clinic):
    return TenantScopedSession(db_session, clinic.id)


@pytest.fixture
def make_appointment(tenant_db, service):
    def _make(start, email="ana@example.com", status="SCHEDULED", first_name="Ana"):
        patient = tenant_db.create(Patient, {"first_name": first_name, "last_name": "Cruz", "email": email})
        appointment = tenant_db.create(Appointment, {
            "patient_id": patient.id,
            "service_id": service.id,
            "start_time": start,
            "end_time": start + timedelta(minutes=30),
            "status": status,
            "source": "ONLINE",
            "patient_email": email,
            "booking_id": f"book_{patient.id}",
        })
        tenant_db.commit()
        return appointment

    return _make


class TestAppointmentLabel:
    def test_rendered_in_clinic_timezone(self):
        label = format_appointment_label(datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc), "Asia/Manila")
        assert label == "Monday, March 02, 2026 at 10:00"


class TestBookingConfirmation:
    def test_sends_once(self, db_session, clinic, notification_guard, email_sender, make_appointment):
        appointment = make_appointment(NOW + timedelta(days=1))

        result = deliver_booking_confirmation(db_session, clinic.id, appointment.id, notification_guard, now=NOW)

        assert result.ok
        assert result.data.notification.type == "BOOKING_CONFIRMATION"
        assert result.data.notification.idempotency_key == f"booking-confirmation:{appointment.id}"
        kwargs = email_sender.call_args.kwargs
        assert kwargs["to_email"] == "ana@example.com"
        assert "Sunrise Family Clinic" in kwargs["html_content"]
        assert "Monday, March 02, 2026 at 09:00" not in kwargs["html_content"]
        assert "Tuesday, March 03, 2026 at 09:00" in kwargs["html_content"]

    def test_rerun_replays(self, db_session, clinic, notification_guard, email_sender, make_appointment):
        appointment = make_appointment(NOW + timedelta(days=1))

        deliver_booking_confirmation(db_session, clinic.id, appointment.id, notification_guard, now=NOW)
        again = deliver_booking_confirmation(db_session, clinic.id, appointment.id, notification_guard, now=NOW)

        assert again.data.replayed is True
        assert email_sender.call_count == 1

    def test_missing_appointment(self, db_session, clinic, notification_guard, email_sender):
        assert deliver_booking_confirmation(db_session, clinic.id, "nope", notification_guard, now=NOW) is None
        email_sender.assert_not_called()

    def test_other_clinic_cannot_trigger(self, db_session, other_clinic, notification_guard, make_appointment):
        appointment = make_appointment(NOW + timedelta(days=1))

        assert deliver_booking_confirmation(db_session, other_clinic.id, appointment.id, notification_guard) is None

    def test_no_email_is_skipped(self, db_session, clinic, notification_guard, make_appointment):
        appointment = make_appointment(NOW + timedelta(days=1), email=None)

        assert deliver_booking_confirmation(db_session, clinic.id, appointment.id, notification_guard, now=NOW) is None

    def test_provider_failure_is_reported(self, db_session, clinic, notification_guard, email_sender,
                                          make_appointment):
        email_sender.side_effect = RuntimeError("smtp unavailable")
        appointment = make_appointment(NOW + timedelta(days=1))

        result = deliver_booking_confirmation(db_session, clinic.id, appointment.id, notification_guard, now=NOW)

        assert result.code == ErrorCode.NOTIFICATION_DELIVERY_FAILED


class TestReminderDispatch:
    def test_reminds_appointments_inside_window(self, db_session, notification_guard, email_sender,
                                                make_appointment):
        make_appointment(NOW + timedelta(hours=2))
        make_appointment(NOW + timedelta(hours=23), email="ben@example.com", first_name="Ben")
        make_appointment(NOW + timedelta(hours=30), email="cara@example.com", first_name="Cara")
        make_appointment(NOW + timedelta(hours=3), email="dan@example.com", status="CANCELLED")
        make_appointment(NOW + timedelta(hours=4), email=None)

        summary = dispatch_due_reminders(db_session, notification_guard, now=NOW)

        assert summary == {"scanned": 3, "sent": 2, "replayed": 0, "skipped": 1, "failures": 0}
        recipients = sorted(call.kwargs["to_email"] for call in email_sender.call_args_list)
        assert recipients == ["ana@example.com", "ben@example.com"]

    def test_hourly_rerun_does_not_resend(self, db_session, clinic, notification_guard, email_sender,
                                          make_appointment):
        make_appointment(NOW + timedelta(hours=5))

        dispatch_due_reminders(db_session, notification_guard, now=NOW)
        summary = dispatch_due_reminders(db_session, notification_guard, now=NOW + timedelta(hours=1))

        assert summary["replayed"] == 1
        assert summary["sent"] == 0
        assert email_sender.call_count == 1
        assert TenantScopedSession(db_session, clinic.id).count(Notification) == 1

    def test_covers_every_clinic(self, db_session, other_clinic, other_service, notification_guard,
                                 make_appointment):
        make_appointment(NOW + timedelta(hours=2))
        other_db = TenantScopedSession(db_session, other_clinic.id)
        patient = other_db.create(Patient, {"first_name": "Eve", "last_name": "Sy", "email": "eve@example.com"})
        other_db.create(Appointment, {
            "patient_id": patient.id,
            "service_id": other_service.id,
            "start_time": NOW + timedelta(hours=6),
            "end_time": NOW + timedelta(hours=6, minutes=45),
            "patient_email": "eve@example.com",
        })
        other_db.commit()

        summary = dispatch_due_reminders(db_session, notification_guard, now=NOW)

        assert summary["sent"] == 2
        assert other_db.count(Notification) == 1


class TestEnqueue:
    def test_hands_off_to_worker(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "clinicbook.tasks.notification_tasks.send_booking_confirmation.delay",
            lambda **kwargs: calls.append(kwargs),
        )

        enqueue_booking_confirmation(clinic_id="clinic-1", appointment_id="appt-1")

        assert calls == [{"clinic_id": "clinic-1", "appointment_id": "appt-1"}]


class TestWorkerGuard:
    def test_tasks_share_one_guard(self, monkeypatch):
        guards = []
        monkeypatch.setattr(notification_tasks, "SessionLocal", MagicMock(name="SessionLocal"))
        monkeypatch.setattr(
            notification_tasks, "deliver_booking_confirmation",
            lambda db, clinic_id, appointment_id, guard: guards.append(guard),
        )
        monkeypatch.setattr(
            notification_tasks, "dispatch_due_reminders",
            lambda db, guard: guards.append(guard) or {},
        )

        assert send_booking_confirmation("clinic-1", "appt-1")["status"] == "skipped"
        send_booking_confirmation("clinic-1", "appt-2")
        send_appointment_reminders()

        assert len(guards) == 3
        assert all(guard is notification_tasks.notification_guard for guard in guards)
        assert isinstance(notification_tasks.notification_guard, NotificationAdmissionGuard)
