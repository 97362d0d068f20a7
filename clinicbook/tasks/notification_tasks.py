# ===== clinicbook/tasks/notification_tasks.py =====
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from clinicbook.config.celery_config import celery_app
from clinicbook.config.database import SessionLocal
from clinicbook.config.settings import settings
from clinicbook.core.results import Result
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.clinic import Clinic
from clinicbook.models.notification import NotificationType
from clinicbook.models.service import Service
from clinicbook.services.appointment.appointment_service import AppointmentService
from clinicbook.services.email.email_service import EmailService
from clinicbook.services.notification.notification_service import NotificationAdmissionGuard
from clinicbook.services.patient.patient_service import PatientService
from clinicbook.utils.time_utils import get_zone, to_utc, utcnow

logger = logging.getLogger(__name__)

# One guard per worker process so its lock serializes every task run here
notification_guard = NotificationAdmissionGuard()


def format_appointment_label(start_time: datetime, timezone: str) -> str:
    """'Monday, March 02, 2026 at 10:00' in the clinic timezone"""
    return to_utc(start_time).astimezone(get_zone(timezone)).strftime("%A, %B %d, %Y at %H:%M")


def _load_appointment_context(db: Session, clinic_id: str, appointment_id: str):
    tenant_db = TenantScopedSession(db, clinic_id)
    appointment = AppointmentService.get_appointment(tenant_db, appointment_id)
    if appointment is None:
        return tenant_db, None

    clinic = db.query(Clinic).filter(Clinic.id == clinic_id).first()
    patient = PatientService.get_patient(tenant_db, appointment.patient_id)
    service = tenant_db.find_first(Service, filters={"id": appointment.service_id})
    return tenant_db, {
        "clinic": clinic,
        "appointment": appointment,
        "patient": patient,
        "service": service,
    }


def deliver_booking_confirmation(
        db: Session,
        clinic_id: str,
        appointment_id: str,
        guard: NotificationAdmissionGuard,
        now: Optional[datetime] = None
) -> Optional[Result]:
    """
    Email the patient a confirmation for a fresh public booking.

    Keyed by appointment, so re-running the task replays instead of resending.
    Returns None when there is nothing to send.
    """
    tenant_db, context = _load_appointment_context(db, clinic_id, appointment_id)
    if context is None:
        logger.warning(f"Appointment {appointment_id} not found for clinic {clinic_id}; no confirmation sent")
        return None

    clinic, appointment, patient = context["clinic"], context["appointment"], context["patient"]
    recipient_email = (patient.email if patient else None) or appointment.patient_email
    if not recipient_email:
        logger.info(f"Appointment {appointment_id} has no patient email; skipping confirmation")
        return None

    content = EmailService.render_booking_confirmation(
        clinic_name=clinic.name,
        patient_name=patient.first_name if patient else "there",
        service_name=context["service"].name if context["service"] else "appointment",
        local_start=format_appointment_label(appointment.start_time, clinic.timezone),
    )

    result = guard.send_email(
        tenant_db,
        type=NotificationType.BOOKING_CONFIRMATION,
        recipient_email=recipient_email,
        subject=content["subject"],
        html=content["html"],
        text=content["text"],
        patient_id=appointment.patient_id,
        appointment_id=appointment.id,
        idempotency_key=f"booking-confirmation:{appointment.id}",
        metadata={"clinicSlug": clinic.slug, "bookingId": appointment.booking_id or ""},
        now=now,
    )

    if result.ok:
        logger.info(
            f"Booking confirmation for {appointment.id} "
            f"{'replayed' if result.data.replayed else 'sent'}"
        )
    else:
        logger.warning(f"Booking confirmation for {appointment.id} not sent: {result.code.value}")
    return result


def dispatch_due_reminders(
        db: Session,
        guard: NotificationAdmissionGuard,
        now: Optional[datetime] = None,
        lookahead_hours: Optional[int] = None
) -> Dict[str, Any]:
    """
    Send REMINDER_24H emails for scheduled appointments starting within the lookahead.

    Runs hourly, so one appointment is seen many times; the per-appointment
    idempotency key turns repeats into replays.
    """
    now = to_utc(now) if now is not None else utcnow()
    lookahead_hours = settings.REMINDER_LOOKAHEAD_HOURS if lookahead_hours is None else lookahead_hours
    window_end = now + timedelta(hours=lookahead_hours)

    summary = {"scanned": 0, "sent": 0, "replayed": 0, "skipped": 0, "failures": 0}

    for clinic in db.query(Clinic).order_by(Clinic.slug).all():
        tenant_db = TenantScopedSession(db, clinic.id)
        for appointment in AppointmentService.list_upcoming_scheduled(tenant_db, now, window_end):
            summary["scanned"] += 1

            patient = PatientService.get_patient(tenant_db, appointment.patient_id)
            recipient_email = (patient.email if patient else None) or appointment.patient_email
            if not recipient_email:
                summary["skipped"] += 1
                continue

            service = tenant_db.find_first(Service, filters={"id": appointment.service_id})
            content = EmailService.render_appointment_reminder(
                clinic_name=clinic.name,
                patient_name=patient.first_name if patient else "there",
                service_name=service.name if service else "appointment",
                local_start=format_appointment_label(appointment.start_time, clinic.timezone),
            )

            result = guard.send_email(
                tenant_db,
                type=NotificationType.REMINDER_24H,
                recipient_email=recipient_email,
                subject=content["subject"],
                html=content["html"],
                text=content["text"],
                patient_id=appointment.patient_id,
                appointment_id=appointment.id,
                idempotency_key=f"reminder-24h:{appointment.id}",
                metadata={"clinicSlug": clinic.slug, "appointmentId": appointment.id},
                now=now,
            )

            if not result.ok:
                summary["failures"] += 1
                logger.warning(f"Reminder for appointment {appointment.id} not sent: {result.code.value}")
            elif result.data.replayed:
                summary["replayed"] += 1
            else:
                summary["sent"] += 1

    logger.info(f"Reminder dispatch finished: {summary}")
    return summary


@celery_app.task(bind=True, max_retries=3)
def send_booking_confirmation(self, clinic_id: str, appointment_id: str):
    """
    Send the confirmation email for a public booking

    Args:
        clinic_id: Clinic that owns the appointment
        appointment_id: Appointment created by the booking
    """
    db = SessionLocal()
    try:
        logger.info(f"Sending booking confirmation for appointment {appointment_id}")
        result = deliver_booking_confirmation(db, clinic_id, appointment_id, notification_guard)
        if result is None:
            return {"status": "skipped", "appointment_id": appointment_id}
        if not result.ok:
            return {"status": "failed", "appointment_id": appointment_id, "code": result.code.value}
        return {"status": "success", "appointment_id": appointment_id, "replayed": result.data.replayed}

    except Exception as exc:
        logger.error(f"Failed to send booking confirmation for {appointment_id}: {exc}")
        db.rollback()

        # Retry with exponential backoff: 1min, 2min, 4min
        raise self.retry(
            exc=exc,
            countdown=60 * (2 ** self.request.retries)
        )
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def send_appointment_reminders(self):
    """Periodic task: 24 hour reminders for upcoming appointments"""
    db = SessionLocal()
    try:
        return dispatch_due_reminders(db, notification_guard)
    except Exception as exc:
        logger.error(f"Reminder dispatch failed: {exc}")
        db.rollback()
        raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
    finally:
        db.close()


def enqueue_booking_confirmation(clinic_id: str, appointment_id: str):
    """Hand a fresh booking's confirmation to the worker"""
    send_booking_confirmation.delay(clinic_id=clinic_id, appointment_id=appointment_id)
