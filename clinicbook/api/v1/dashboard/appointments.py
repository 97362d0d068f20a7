# clinicbook/api/v1/dashboard/appointments.py
"""
Appointment Endpoints
Clinic calendar reads and staff-entered appointments.
"""
from datetime import date, timedelta
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from clinicbook.api.dependencies import failure_response, get_tenant_db
from clinicbook.core.results import ErrorCode, Failure
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.appointment import AppointmentStatus
from clinicbook.models.service import Service
from clinicbook.schemas.dashboard import AppointmentCreate
from clinicbook.services.appointment.appointment_service import AppointmentService
from clinicbook.services.availability.availability_service import AvailabilityService
from clinicbook.services.patient.patient_service import PatientService
from clinicbook.utils.time_utils import to_utc

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
def list_appointments(
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        status: Optional[AppointmentStatus] = None,
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        tenant_db: TenantScopedSession = Depends(get_tenant_db)
):
    """Appointments of the caller's clinic, ordered by start time"""
    appointments = AppointmentService.list_appointments(
        tenant_db,
        start_date=start_date,
        end_date=end_date,
        status=status.value if status else None,
        skip=skip,
        limit=limit,
    )
    return {
        "total": len(appointments),
        "appointments": [AppointmentService.serialize(a) for a in appointments],
    }


@router.get("/{appointment_id}")
def get_appointment(appointment_id: str, tenant_db: TenantScopedSession = Depends(get_tenant_db)):
    appointment = AppointmentService.get_appointment(tenant_db, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return AppointmentService.serialize(appointment)


@router.post("/", status_code=201)
def create_appointment(payload: AppointmentCreate, tenant_db: TenantScopedSession = Depends(get_tenant_db)):
    """
    Book an appointment on behalf of a patient.

    The slot must not overlap another blocking appointment of the clinic.
    """
    try:
        try:
            start_time = to_utc(payload.start_time)
        except ValueError:
            return failure_response(Failure(ErrorCode.INVALID_SLOT_START, "Invalid appointment start time."))

        patient = PatientService.get_patient(tenant_db, payload.patient_id)
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")

        service = tenant_db.find_first(Service, filters={"id": payload.service_id})
        if not service:
            return failure_response(Failure(ErrorCode.SERVICE_NOT_FOUND, "Service not found."))

        end_time = start_time + timedelta(minutes=service.duration_minutes)
        if AvailabilityService.find_appointments_overlapping(tenant_db, start_time, end_time):
            return failure_response(Failure(
                ErrorCode.SLOT_UNAVAILABLE,
                "The requested time overlaps an existing appointment.",
            ))

        appointment = AppointmentService.create_appointment(
            tenant_db,
            patient_id=patient.id,
            service_id=service.id,
            start_time=start_time,
            end_time=end_time,
            source=payload.source.value,
            staff_id=payload.staff_id,
            patient_email=patient.email,
            notes=payload.notes,
        )
        tenant_db.commit()

        logger.info(f"Staff created appointment {appointment.id} for clinic {tenant_db.clinic_id}")
        return AppointmentService.serialize(appointment)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating appointment: {str(e)}", exc_info=True)
        tenant_db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create appointment")
