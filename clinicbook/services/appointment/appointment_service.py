# ============================================================================
# clinicbook/services/appointment/appointment_service.py
# ============================================================================
"""Service for managing appointments"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.appointment import Appointment, AppointmentSource, AppointmentStatus
from clinicbook.utils.time_utils import isoformat_z, to_utc


class AppointmentService:
    """Handles appointment operations"""

    @staticmethod
    def create_appointment(
            tenant_db: TenantScopedSession,
            patient_id: str,
            service_id: str,
            start_time: datetime,
            end_time: datetime,
            source: str = AppointmentSource.STAFF.value,
            staff_id: Optional[str] = None,
            patient_email: Optional[str] = None,
            booking_id: Optional[str] = None,
            notes: Optional[str] = None
    ) -> Appointment:
        """Create a new appointment (caller commits)"""
        return tenant_db.create(Appointment, {
            "patient_id": patient_id,
            "service_id": service_id,
            "staff_id": staff_id,
            "start_time": to_utc(start_time),
            "end_time": to_utc(end_time),
            "status": AppointmentStatus.SCHEDULED.value,
            "source": source,
            "patient_email": patient_email,
            "booking_id": booking_id,
            "notes": notes,
        })

    @staticmethod
    def list_booking_records_for_day(
            tenant_db: TenantScopedSession,
            service_id: str,
            patient_email: str,
            range_start: datetime,
            range_end: datetime
    ) -> List[Appointment]:
        """Non-cancelled bookings by this email for this service starting in the range"""
        return tenant_db.find_many(
            Appointment,
            filters={"service_id": service_id, "patient_email": patient_email},
            where=[
                Appointment.start_time >= range_start,
                Appointment.start_time < range_end,
                Appointment.status != AppointmentStatus.CANCELLED.value,
            ],
        )

    @staticmethod
    def list_appointments(
            tenant_db: TenantScopedSession,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            status: Optional[str] = None,
            skip: int = 0,
            limit: int = 50
    ) -> List[Appointment]:
        """Appointments of the clinic ordered by start time"""
        where = []
        if start_date:
            where.append(Appointment.start_time >= to_utc(datetime.combine(start_date, datetime.min.time())))
        if end_date:
            where.append(Appointment.start_time < to_utc(datetime.combine(end_date + timedelta(days=1), datetime.min.time())))

        filters = {"status": status} if status else None
        return tenant_db.find_many(
            Appointment,
            filters=filters,
            where=where,
            order_by=[Appointment.start_time.asc()],
            offset=skip,
            limit=limit,
        )

    @staticmethod
    def list_upcoming_scheduled(
            tenant_db: TenantScopedSession,
            window_start: datetime,
            window_end: datetime
    ) -> List[Appointment]:
        return tenant_db.find_many(
            Appointment,
            filters={"status": AppointmentStatus.SCHEDULED.value},
            where=[Appointment.start_time >= window_start, Appointment.start_time < window_end],
            order_by=[Appointment.start_time.asc()],
        )

    @staticmethod
    def get_appointment(tenant_db: TenantScopedSession, appointment_id: str) -> Optional[Appointment]:
        return tenant_db.find_first(Appointment, filters={"id": appointment_id})

    @staticmethod
    def serialize(appointment: Appointment) -> Dict[str, Any]:
        return {
            "id": appointment.id,
            "clinicId": appointment.clinic_id,
            "patientId": appointment.patient_id,
            "staffId": appointment.staff_id,
            "serviceId": appointment.service_id,
            "startTime": isoformat_z(appointment.start_time),
            "endTime": isoformat_z(appointment.end_time),
            "status": appointment.status,
            "source": appointment.source,
            "notes": appointment.notes,
            "cancellationReason": appointment.cancellation_reason,
        }
