# ===== clinicbook/models/appointment.py =====
import enum
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from clinicbook.models.base import Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"


# Statuses that free the interval for new bookings
NON_BLOCKING_STATUSES = frozenset({AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value})


class AppointmentSource(str, enum.Enum):
    ONLINE = "ONLINE"
    PHONE = "PHONE"
    WALK_IN = "WALK_IN"
    STAFF = "STAFF"


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # References
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False)
    staff_id = Column(String(36), nullable=True)

    # UTC instants, [start_time, end_time)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)

    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    source = Column(String(20), nullable=False, default=AppointmentSource.STAFF.value)

    # Public booking bookkeeping
    booking_id = Column(String(64), nullable=True, unique=True)
    patient_email = Column(String(255), nullable=True)  # normalized, used by duplicate detection
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_blocking(self) -> bool:
        return (self.status or "").upper() not in NON_BLOCKING_STATUSES
