# clinicbook/models/clinic.py
"""
Clinic Model - the tenant boundary
Every other table carries a clinic_id pointing here.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from clinicbook.models.base import Base


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(80), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)

    # Public contact details
    address = Column(String(300), nullable=True)
    phone = Column(String(40), nullable=True)
    email = Column(String(255), nullable=True)

    timezone = Column(String(64), nullable=False, default="UTC")
    currency = Column(String(3), nullable=False, default="USD")
    is_public_booking_enabled = Column(Boolean, default=True)

    # Booking rules (NULL falls back to settings defaults)
    lead_time_minutes = Column(Integer, nullable=True)
    max_advance_days = Column(Integer, nullable=True)
    slot_step_minutes = Column(Integer, nullable=True)

    operating_hours = relationship(
        "OperatingHours",
        back_populates="clinic",
        cascade="all, delete-orphan",
        order_by="OperatingHours.day_of_week",
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<Clinic(id={self.id}, slug={self.slug})>"

    def to_dict(self):
        """Public profile for API responses"""
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "timezone": self.timezone,
            "currency": self.currency,
        }


class OperatingHours(Base):
    __tablename__ = "operating_hours"
    __table_args__ = (
        UniqueConstraint("clinic_id", "day_of_week", name="uq_operating_hours_clinic_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    clinic_id = Column(String(36), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    open_time = Column(String(5), nullable=False)  # HH:MM format
    close_time = Column(String(5), nullable=False)  # HH:MM format
    is_closed = Column(Boolean, default=False)

    clinic = relationship("Clinic", back_populates="operating_hours")

    def __repr__(self):
        return f"<OperatingHours(clinic_id={self.clinic_id}, day={self.day_of_week})>"
