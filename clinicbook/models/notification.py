# clinicbook/models/notification.py
import enum
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint

from clinicbook.models.base import Base
from clinicbook.utils.time_utils import isoformat_z


class NotificationType(str, enum.Enum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    REMINDER_24H = "REMINDER_24H"
    REMINDER_1H = "REMINDER_1H"
    NO_SHOW_FOLLOWUP = "NO_SHOW_FOLLOWUP"
    INVOICE_SENT = "INVOICE_SENT"
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    FOLLOWUP_REMINDER = "FOLLOWUP_REMINDER"


class NotificationChannel(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("clinic_id", "idempotency_key", name="uq_notifications_clinic_idempotency_key"),
    )

    id = Column(String(40), primary_key=True, default=lambda: f"ntf_{uuid.uuid4()}")
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_id = Column(String(36), nullable=True)
    patient_id = Column(String(36), nullable=True)

    type = Column(String(40), nullable=False)
    channel = Column(String(10), nullable=False)
    recipient_email = Column(String(255), nullable=True)
    recipient_phone = Column(String(40), nullable=True)

    status = Column(String(10), nullable=False, default=NotificationStatus.PENDING.value)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)

    idempotency_key = Column(String(255), nullable=True)
    meta = Column("metadata", JSON, nullable=True)

    # Set explicitly so the daily cap can be evaluated against an injected clock
    created_at = Column(DateTime(timezone=True), nullable=False)

    @property
    def recipient_key(self):
        return (
            (self.patient_id or "").strip()
            or (self.recipient_email or "").strip().lower()
            or (self.recipient_phone or "").strip()
            or None
        )

    def to_dict(self):
        return {
            "id": self.id,
            "clinicId": self.clinic_id,
            "appointmentId": self.appointment_id,
            "patientId": self.patient_id,
            "type": self.type,
            "channel": self.channel,
            "recipientEmail": self.recipient_email,
            "recipientPhone": self.recipient_phone,
            "status": self.status,
            "sentAt": isoformat_z(self.sent_at) if self.sent_at else None,
            "errorMessage": self.error_message,
            "providerMessageId": self.provider_message_id,
            "idempotencyKey": self.idempotency_key,
            "metadata": self.meta,
            "createdAt": isoformat_z(self.created_at) if self.created_at else None,
        }
