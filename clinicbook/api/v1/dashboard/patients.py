# clinicbook/api/v1/dashboard/patients.py
"""
Patient Endpoints
Clinic staff list and register patients. Every query is confined to the
clinic in the caller's token.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from clinicbook.api.dependencies import get_tenant_db
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.schemas.dashboard import PatientCreate
from clinicbook.services.patient.patient_service import PatientService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
def list_patients(
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        tenant_db: TenantScopedSession = Depends(get_tenant_db)
):
    patients = PatientService.list_patients(tenant_db, skip=skip, limit=limit)
    return {
        "total": len(patients),
        "patients": [patient.to_dict() for patient in patients],
    }


@router.get("/{patient_id}")
def get_patient(patient_id: str, tenant_db: TenantScopedSession = Depends(get_tenant_db)):
    patient = PatientService.get_patient(tenant_db, patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient.to_dict()


@router.post("/", status_code=201)
def create_patient(payload: PatientCreate, tenant_db: TenantScopedSession = Depends(get_tenant_db)):
    """Register a patient for the caller's clinic"""
    try:
        if payload.email and PatientService.find_by_email(tenant_db, payload.email):
            raise HTTPException(status_code=409, detail="A patient with this email already exists")

        patient = PatientService.create_patient(
            tenant_db,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            phone=payload.phone,
        )
        tenant_db.commit()

        logger.info(f"Created patient {patient.id} for clinic {tenant_db.clinic_id}")
        return patient.to_dict()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating patient: {str(e)}", exc_info=True)
        tenant_db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create patient")
