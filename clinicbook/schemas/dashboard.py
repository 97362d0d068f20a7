"""
Pydantic schemas for clinic dashboard endpoints
"""
from decimal import Decimal
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from clinicbook.models.appointment import AppointmentSource
from clinicbook.schemas.booking import CamelModel


class PatientCreate(CamelModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=80)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=40)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v


class AppointmentCreate(CamelModel):
    patient_id: str = Field(..., alias="patientId")
    service_id: str = Field(..., alias="serviceId")
    start_time: str = Field(..., alias="startTime", description="ISO instant")
    staff_id: Optional[str] = Field(None, alias="staffId")
    source: AppointmentSource = AppointmentSource.STAFF
    notes: Optional[str] = Field(None, max_length=1000)


class InvoiceCreate(CamelModel):
    patient_id: str = Field(..., alias="patientId")
    appointment_id: Optional[str] = Field(None, alias="appointmentId")
    currency: str = Field("USD", min_length=3, max_length=3)
    total: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
