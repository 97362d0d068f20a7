# ============================================================================
# clinicbook/services/invoice/invoice_service.py
# ============================================================================
"""Service for clinic invoices"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from clinicbook.core.tenant_session import TenantScopedSession
from clinicbook.models.invoice import Invoice
from clinicbook.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class InvoiceService:
    """Handles invoice operations for one clinic"""

    @staticmethod
    def next_invoice_number(tenant_db: TenantScopedSession, now: Optional[datetime] = None) -> str:
        """INV-<year>-<5 digit sequence>, sequence restarting each year per clinic"""
        year = (now or utcnow()).year
        prefix = f"INV-{year}-"
        issued = tenant_db.count(Invoice, where=[Invoice.invoice_number.like(f"{prefix}%")])
        return f"{prefix}{issued + 1:05d}"

    @staticmethod
    def create_invoice(
            tenant_db: TenantScopedSession,
            patient_id: str,
            total: Decimal,
            currency: str = "USD",
            appointment_id: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Invoice:
        """Create a DRAFT invoice and commit"""
        invoice = tenant_db.create(Invoice, {
            "patient_id": patient_id,
            "appointment_id": appointment_id,
            "invoice_number": InvoiceService.next_invoice_number(tenant_db, now),
            "currency": currency.upper(),
            "total": total,
            "status": "DRAFT",
        })
        tenant_db.commit()
        logger.info(f"Created invoice {invoice.invoice_number} for clinic {tenant_db.clinic_id}")
        return invoice

    @staticmethod
    def list_invoices(
            tenant_db: TenantScopedSession,
            status: Optional[str] = None,
            skip: int = 0,
            limit: int = 50
    ) -> List[Invoice]:
        filters = {"status": status} if status else None
        return tenant_db.find_many(
            Invoice,
            filters=filters,
            order_by=[Invoice.invoice_number.desc()],
            offset=skip,
            limit=limit,
        )
