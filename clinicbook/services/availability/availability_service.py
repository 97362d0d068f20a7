# ===== clinicbook/services/availability/availability_service.py =====
from typing import Dict, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from clinicbook.config.settings import get_settings
from clinicbook.core.results import ErrorCode, Failure, Ok, Result
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.appointment import Appointment, NON_BLOCKING_STATUSES
from clinicbook.models.clinic import Clinic, OperatingHours
from clinicbook.models.service import Service
from clinicbook.services.availability.slot_engine import BookingRules, SlotEngineError, compute_slots
from clinicbook.utils.time_utils import get_zone, parse_calendar_date, zoned_to_utc

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Loads clinic data through the tenant guard and feeds the slot engine"""

    @staticmethod
    def get_clinic_by_slug(db: Session, clinic_slug: str) -> Optional[Clinic]:
        """Clinic directory lookup (the clinic table is not tenant-scoped)"""
        return db.query(Clinic).filter(
            Clinic.slug == clinic_slug,
            Clinic.is_public_booking_enabled == True  # noqa: E712
        ).first()

    @staticmethod
    def get_booking_rules(clinic: Clinic) -> BookingRules:
        """Clinic rules with settings defaults for anything unset"""
        settings = get_settings()
        return BookingRules(
            lead_time_minutes=(
                clinic.lead_time_minutes
                if clinic.lead_time_minutes is not None
                else settings.DEFAULT_LEAD_TIME_MINUTES
            ),
            max_advance_days=(
                clinic.max_advance_days
                if clinic.max_advance_days is not None
                else settings.DEFAULT_MAX_ADVANCE_DAYS
            ),
            slot_step_minutes=(
                clinic.slot_step_minutes
                if clinic.slot_step_minutes is not None
                else settings.DEFAULT_SLOT_STEP_MINUTES
            ),
        )

    @staticmethod
    def get_operating_hours(tenant_db: TenantScopedSession) -> List[OperatingHours]:
        return tenant_db.find_many(OperatingHours, order_by=[OperatingHours.day_of_week])

    @staticmethod
    def list_active_services(tenant_db: TenantScopedSession) -> List[Service]:
        return tenant_db.find_many(
            Service,
            filters={"is_active": True},
            order_by=[Service.display_order, Service.name],
        )

    @staticmethod
    def get_active_service(tenant_db: TenantScopedSession, service_id: str) -> Optional[Service]:
        return tenant_db.find_first(Service, filters={"id": service_id, "is_active": True})

    @staticmethod
    def find_appointments_overlapping(
            tenant_db: TenantScopedSession,
            range_start: datetime,
            range_end: datetime
    ) -> List[Appointment]:
        """Blocking appointments whose [start, end) intersects [range_start, range_end)"""
        return tenant_db.find_many(
            Appointment,
            where=[
                Appointment.start_time < range_end,
                Appointment.end_time > range_start,
                Appointment.status.notin_(NON_BLOCKING_STATUSES),
            ],
            order_by=[Appointment.start_time],
        )

    @staticmethod
    def local_day_bounds(date: str, timezone: str):
        """UTC instants of local midnight and the following midnight"""
        try:
            local_date = parse_calendar_date(date)
            zone = get_zone(timezone)
            return zoned_to_utc(local_date, 0, zone), zoned_to_utc(local_date, 24 * 60, zone)
        except ValueError as e:
            raise SlotEngineError(str(e)) from e

    @staticmethod
    def get_public_slots(
            db: Session,
            clinic_slug: str,
            service_id: str,
            date: str,
            now: Optional[datetime] = None
    ) -> Result:
        """
        Resolve clinic and service, then compute the day's open slots.

        Returns Ok with clinic, service, timezone, date and slots, or a
        CLINIC_NOT_FOUND / SERVICE_NOT_FOUND failure. Raises SlotEngineError
        for a malformed date.
        """
        clinic = AvailabilityService.get_clinic_by_slug(db, clinic_slug)
        if not clinic:
            return Failure(ErrorCode.CLINIC_NOT_FOUND, "Clinic not found.")

        tenant_db = TenantScopedSession(db, clinic.id)
        service = AvailabilityService.get_active_service(tenant_db, service_id)
        if not service:
            return Failure(ErrorCode.SERVICE_NOT_FOUND, "Service not found.")

        day_start, day_end = AvailabilityService.local_day_bounds(date, clinic.timezone)
        appointments = AvailabilityService.find_appointments_overlapping(tenant_db, day_start, day_end)

        slots = compute_slots(
            date=date,
            timezone=clinic.timezone,
            service_duration_minutes=service.duration_minutes,
            operating_hours=AvailabilityService.get_operating_hours(tenant_db),
            existing_appointments=appointments,
            rules=AvailabilityService.get_booking_rules(clinic),
            now=now,
        )

        logger.info(f"Computed {len(slots)} slots for {clinic_slug}/{service_id} on {date}")

        return Ok({
            "clinic": clinic,
            "service": service,
            "timezone": clinic.timezone,
            "date": date,
            "slots": slots,
        })

    @staticmethod
    def serialize_slots_response(data: Dict) -> Dict:
        service = data["service"]
        return {
            "clinicSlug": data["clinic"].slug,
            "date": data["date"],
            "timezone": data["timezone"],
            "service": {
                "id": service.id,
                "name": service.name,
                "durationMinutes": service.duration_minutes,
            },
            "slots": [slot.to_dict() for slot in data["slots"]],
        }
