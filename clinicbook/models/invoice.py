from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func
import uuid
from clinicbook.models.base import Base


class Invoice(Base):
    """Billing record. Only the tenant-scoped read/write surface lives here."""
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=True)

    invoice_number = Column(String(40), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    total = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="DRAFT")  # DRAFT, SENT, PAID, VOID

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "clinicId": self.clinic_id,
            "patientId": self.patient_id,
            "appointmentId": self.appointment_id,
            "invoiceNumber": self.invoice_number,
            "currency": self.currency,
            "total": f"{self.total:.2f}" if self.total is not None else None,
            "status": self.status,
        }
