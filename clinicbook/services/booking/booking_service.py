# ============================================================================
# clinicbook/services/booking/booking_service.py
# ============================================================================
"""
Public booking admission.

A booking attempt is keyed by the client's idempotency key (or, when the
client sends none, by the duplicate fingerprint) and moves through the
ledger as NONE -> IN_PROGRESS -> COMPLETED. Any failure after the key is
acquired releases it, so a corrected retry with the same key is admitted.
"""
import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from clinicbook.core.results import ErrorCode, Failure, Ok, Result
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.appointment import AppointmentSource
from clinicbook.schemas.booking import PublicBookingRequest, PublicBookingResponse
from clinicbook.services.appointment.appointment_service import AppointmentService
from clinicbook.services.availability.availability_service import AvailabilityService
from clinicbook.services.availability.slot_engine import BookingRules, compute_slots
from clinicbook.services.booking.idempotency_store import IdempotencyStore, Reservation, ReserveStatus
from clinicbook.services.patient.patient_service import PatientService, normalize_email
from clinicbook.utils.time_utils import isoformat_z, local_date_key, to_utc, utcnow

logger = logging.getLogger(__name__)


def build_duplicate_fingerprint(
        clinic_slug: str,
        service_id: str,
        slot_start_time: Any,
        patient_email: str,
        clinic_timezone: str
) -> str:
    """clinic|service|clinic-local date|normalized email"""
    return "|".join([
        clinic_slug,
        service_id,
        local_date_key(to_utc(slot_start_time), clinic_timezone),
        normalize_email(patient_email) or "",
    ])


def validate_booking_rules(
        clinic_slug: str,
        service_id: str,
        slot_start_time: Any,
        patient_email: str,
        clinic_timezone: str,
        rules: BookingRules,
        now: Optional[datetime] = None,
        existing_bookings: Iterable = ()
) -> Result:
    """
    Check a requested slot against the clinic's booking rules.

    `existing_bookings` rows expose service_id, start_time and patient_email.
    Returns Ok(fingerprint) or a Failure carrying the first violated rule.
    """
    now = to_utc(now) if now is not None else utcnow()

    try:
        slot_start = to_utc(slot_start_time)
    except (TypeError, ValueError):
        return Failure(ErrorCode.INVALID_SLOT_START, "Invalid booking slot start time.")

    if slot_start <= now:
        return Failure(ErrorCode.BOOKING_IN_PAST, "Patients cannot book slots in the past.")

    if slot_start < now + timedelta(minutes=rules.lead_time_minutes):
        return Failure(
            ErrorCode.BOOKING_LEAD_TIME_VIOLATION,
            f"Minimum booking lead time is {rules.lead_time_minutes} minutes.",
            details={"leadTimeMinutes": rules.lead_time_minutes},
        )

    if slot_start > now + timedelta(days=rules.max_advance_days):
        return Failure(
            ErrorCode.BOOKING_ADVANCE_LIMIT_VIOLATION,
            f"Maximum advance booking is {rules.max_advance_days} days.",
            details={"maxAdvanceDays": rules.max_advance_days},
        )

    fingerprint = build_duplicate_fingerprint(
        clinic_slug, service_id, slot_start, patient_email, clinic_timezone
    )
    incoming_day = local_date_key(slot_start, clinic_timezone)
    incoming_email = normalize_email(patient_email)

    for booking in existing_bookings:
        try:
            existing_day = local_date_key(booking.start_time, clinic_timezone)
        except (TypeError, ValueError):
            continue
        if (
                booking.service_id == service_id
                and normalize_email(booking.patient_email) == incoming_email
                and existing_day == incoming_day
        ):
            return Failure(
                ErrorCode.DUPLICATE_BOOKING,
                "A booking already exists for this patient, service, and day. Please choose another time.",
            )

    return Ok(fingerprint)


class KeyedLocks:
    """One lock per key, created on first use"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._guard = threading.Lock()

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks[key]


@dataclass
class BookingOutcome:
    data: Dict[str, Any]
    replayed: bool
    idempotency_key: str
    clinic_id: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        return {**self.data, "replayed": self.replayed}


class BookingAdmissionController:
    """Coordinates validation, the idempotency ledger and persistence"""

    def __init__(self, idempotency_store: IdempotencyStore, clinic_locks: Optional[KeyedLocks] = None):
        self.idempotency_store = idempotency_store
        self.clinic_locks = clinic_locks or KeyedLocks()

    def admit(self, idempotency_key: str) -> Reservation:
        """Reserve the key: ACQUIRED, IN_PROGRESS or REPLAY(response)"""
        reservation = self.idempotency_store.reserve(idempotency_key)
        logger.info(f"Booking admission for key {idempotency_key}: {reservation.status.value}")
        return reservation

    def _release(self, idempotency_key: str, reason: str) -> None:
        self.idempotency_store.release(idempotency_key)
        logger.info(f"Released idempotency key {idempotency_key} ({reason})")

    @staticmethod
    def _in_progress(idempotency_key: str) -> Failure:
        return Failure(
            ErrorCode.IDEMPOTENCY_IN_PROGRESS,
            "A booking request with this idempotency key is already being processed.",
            details={"idempotencyKey": idempotency_key},
        )

    def create_public_booking(
            self,
            db: Session,
            request: PublicBookingRequest,
            idempotency_key: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Result:
        """
        Admit and persist one public booking.

        Returns Ok(BookingOutcome) for a fresh booking or a replay of a
        completed one, otherwise a Failure. Unexpected persistence errors
        release the ledger entry and propagate.
        """
        now = to_utc(now) if now is not None else utcnow()

        try:
            slot_start = to_utc(request.slot_start_time)
        except (TypeError, ValueError):
            return Failure(ErrorCode.INVALID_SLOT_START, "Invalid booking slot start time.")

        clinic = AvailabilityService.get_clinic_by_slug(db, request.clinic_slug)
        if not clinic:
            return Failure(ErrorCode.CLINIC_NOT_FOUND, "Clinic not found.")

        # Instants at the edge of the calendar have no clinic-local day
        try:
            slot_day = local_date_key(slot_start, clinic.timezone)
            day_start, day_end = AvailabilityService.local_day_bounds(slot_day, clinic.timezone)
        except ValueError:
            return Failure(ErrorCode.INVALID_SLOT_START, "Invalid booking slot start time.")

        tenant_db = TenantScopedSession(db, clinic.id)
        service = AvailabilityService.get_active_service(tenant_db, request.service_id)
        if not service:
            return Failure(ErrorCode.SERVICE_NOT_FOUND, "Service not found.")

        idempotency_key = (idempotency_key or "").strip()
        acquired = False
        if idempotency_key:
            reservation = self.admit(idempotency_key)
            if reservation.status == ReserveStatus.IN_PROGRESS:
                return self._in_progress(idempotency_key)
            if reservation.status == ReserveStatus.REPLAY:
                return Ok(BookingOutcome(
                    data=reservation.response,
                    replayed=True,
                    idempotency_key=idempotency_key,
                    clinic_id=clinic.id,
                ))
            acquired = True

        rules = AvailabilityService.get_booking_rules(clinic)
        patient_email = normalize_email(request.patient.email)

        # Re-check, duplicate check and insert are serialized per clinic
        with self.clinic_locks.get(clinic.id):
            try:
                validation = validate_booking_rules(
                    clinic_slug=request.clinic_slug,
                    service_id=service.id,
                    slot_start_time=slot_start,
                    patient_email=patient_email,
                    clinic_timezone=clinic.timezone,
                    rules=rules,
                    now=now,
                    existing_bookings=AppointmentService.list_booking_records_for_day(
                        tenant_db, service.id, patient_email, day_start, day_end
                    ),
                )
            except Exception:
                if acquired:
                    self._release(idempotency_key, "validation error")
                raise
            if not validation.ok:
                if acquired:
                    self._release(idempotency_key, validation.code.value)
                return validation

            if not idempotency_key:
                idempotency_key = validation.data
                reservation = self.admit(idempotency_key)
                if reservation.status == ReserveStatus.IN_PROGRESS:
                    return self._in_progress(idempotency_key)
                if reservation.status == ReserveStatus.REPLAY:
                    return Ok(BookingOutcome(
                        data=reservation.response,
                        replayed=True,
                        idempotency_key=idempotency_key,
                        clinic_id=clinic.id,
                    ))

            try:
                outcome = self._persist_booking(
                    tenant_db, clinic, service, request, slot_start, patient_email,
                    rules, idempotency_key, now, day_start, day_end,
                )
            except Exception:
                tenant_db.rollback()
                self._release(idempotency_key, "persistence error")
                raise

            if not outcome.ok:
                self._release(idempotency_key, outcome.code.value)
                return outcome

            self.idempotency_store.complete(idempotency_key, outcome.data.data)
            logger.info(
                f"Public booking {outcome.data.data['bookingId']} created for clinic "
                f"{request.clinic_slug} (appointment {outcome.data.data['appointmentId']})"
            )
            return outcome

    @staticmethod
    def _persist_booking(
            tenant_db: TenantScopedSession,
            clinic,
            service,
            request: PublicBookingRequest,
            slot_start: datetime,
            patient_email: str,
            rules: BookingRules,
            idempotency_key: str,
            now: datetime,
            day_start: datetime,
            day_end: datetime
    ) -> Result:
        slots = compute_slots(
            date=local_date_key(slot_start, clinic.timezone),
            timezone=clinic.timezone,
            service_duration_minutes=service.duration_minutes,
            operating_hours=AvailabilityService.get_operating_hours(tenant_db),
            existing_appointments=AvailabilityService.find_appointments_overlapping(
                tenant_db, day_start, day_end
            ),
            rules=rules,
            now=now,
        )
        matching_slot = next((slot for slot in slots if slot.start_time == slot_start), None)
        if matching_slot is None:
            return Failure(
                ErrorCode.SLOT_UNAVAILABLE,
                "Selected slot is no longer available.",
                details={"idempotencyKey": idempotency_key},
            )

        patient = PatientService.upsert_from_public_booking(
            tenant_db,
            first_name=request.patient.first_name,
            last_name=request.patient.last_name,
            email=patient_email,
            phone=request.patient.phone,
        )

        booking_id = f"book_{uuid.uuid4()}"
        appointment = AppointmentService.create_appointment(
            tenant_db,
            patient_id=patient.id,
            service_id=service.id,
            start_time=matching_slot.start_time,
            end_time=matching_slot.end_time,
            source=AppointmentSource.ONLINE.value,
            patient_email=patient_email,
            booking_id=booking_id,
            notes=request.notes,
        )
        tenant_db.commit()

        response = PublicBookingResponse(
            booking_id=booking_id,
            appointment_id=appointment.id,
            patient_id=patient.id,
            clinic_slug=request.clinic_slug,
            service_id=service.id,
            slot_start_time=isoformat_z(matching_slot.start_time),
            slot_end_time=isoformat_z(matching_slot.end_time),
            idempotency_key=idempotency_key,
        ).model_dump(by_alias=True, exclude={"replayed"})

        return Ok(BookingOutcome(
            data=response,
            replayed=False,
            idempotency_key=idempotency_key,
            clinic_id=clinic.id,
        ))
