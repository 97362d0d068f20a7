# clinicbook/api/v1/dashboard/invoices.py
"""Invoice Endpoints"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from clinicbook.api.dependencies import get_tenant_db
from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.schemas.dashboard import InvoiceCreate
from clinicbook.services.appointment.appointment_service import AppointmentService
from clinicbook.services.invoice.invoice_service import InvoiceService
from clinicbook.services.patient.patient_service import PatientService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
def list_invoices(
        status: Optional[str] = None,
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        tenant_db: TenantScopedSession = Depends(get_tenant_db)
):
    invoices = InvoiceService.list_invoices(tenant_db, status=status, skip=skip, limit=limit)
    return {
        "total": len(invoices),
        "invoices": [invoice.to_dict() for invoice in invoices],
    }


@router.post("/", status_code=201)
def create_invoice(payload: InvoiceCreate, tenant_db: TenantScopedSession = Depends(get_tenant_db)):
    try:
        if not PatientService.get_patient(tenant_db, payload.patient_id):
            raise HTTPException(status_code=404, detail="Patient not found")

        if payload.appointment_id and not AppointmentService.get_appointment(tenant_db, payload.appointment_id):
            raise HTTPException(status_code=404, detail="Appointment not found")

        invoice = InvoiceService.create_invoice(
            tenant_db,
            patient_id=payload.patient_id,
            total=payload.total,
            currency=payload.currency,
            appointment_id=payload.appointment_id,
        )
        return invoice.to_dict()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating invoice: {str(e)}", exc_info=True)
        tenant_db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create invoice")
