# clinicbook/api/v1/public/clinics.py
"""
Public Clinic Endpoints
Profile, service catalogue and open slots for the booking page. No auth.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from clinicbook.api.dependencies import failure_response
from clinicbook.config.database import get_db
from clinicbook.core.results import ErrorCode, Failure
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.schemas.booking import PublicSlotsResponse
from clinicbook.services.availability.availability_service import AvailabilityService
from clinicbook.services.availability.slot_engine import SlotEngineError

logger = logging.getLogger(__name__)
router = APIRouter()


def _clinic_not_found():
    return failure_response(Failure(ErrorCode.CLINIC_NOT_FOUND, "Clinic not found."))


@router.get("/{slug}")
def get_clinic_profile(slug: str, db: Session = Depends(get_db)):
    """Public clinic profile"""
    clinic = AvailabilityService.get_clinic_by_slug(db, slug)
    if not clinic:
        return _clinic_not_found()
    return clinic.to_dict()


@router.get("/{slug}/services")
def list_clinic_services(slug: str, db: Session = Depends(get_db)):
    """Active services offered for online booking"""
    clinic = AvailabilityService.get_clinic_by_slug(db, slug)
    if not clinic:
        return _clinic_not_found()

    services = AvailabilityService.list_active_services(TenantScopedSession(db, clinic.id))
    return {
        "clinicSlug": clinic.slug,
        "services": [service.to_dict() for service in services],
    }


@router.get("/{slug}/slots", response_model=PublicSlotsResponse, response_model_by_alias=True)
def get_clinic_slots(
        slug: str,
        date: str = Query(..., description="Clinic-local date, YYYY-MM-DD"),
        service_id: str = Query(..., alias="serviceId"),
        db: Session = Depends(get_db)
):
    """Open slots for one service on one clinic-local day"""
    try:
        result = AvailabilityService.get_public_slots(db, slug, service_id, date)
    except SlotEngineError as e:
        return failure_response(Failure(ErrorCode.INVALID_DATE, str(e)))

    if not result.ok:
        return failure_response(result)

    return AvailabilityService.serialize_slots_response(result.data)
