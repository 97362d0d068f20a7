"""
Pydantic schemas for public booking and slot endpoints
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import List, Literal, Optional


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, also accepts snake_case"""
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Request Schemas (for incoming data)
# ============================================================================

class PublicBookingPatient(CamelModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=80)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=80)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=40)

    @field_validator("first_name", "last_name", "phone")
    @classmethod
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v


class PublicBookingRequest(CamelModel):
    """Patient-facing booking request"""
    clinic_slug: str = Field(..., alias="clinicSlug", min_length=2, max_length=80, pattern=r"^[a-z0-9-]+$")
    service_id: str = Field(..., alias="serviceId", min_length=1, max_length=120)
    # Kept as text so an unparseable instant maps to INVALID_SLOT_START
    slot_start_time: str = Field(..., alias="slotStartTime", min_length=1, max_length=64)
    patient: PublicBookingPatient
    notes: Optional[str] = Field(None, max_length=1000)


# ============================================================================
# Response Schemas (for outgoing data)
# ============================================================================

class PublicBookingResponse(CamelModel):
    booking_id: str = Field(..., alias="bookingId")
    appointment_id: str = Field(..., alias="appointmentId")
    patient_id: str = Field(..., alias="patientId")
    clinic_slug: str = Field(..., alias="clinicSlug")
    service_id: str = Field(..., alias="serviceId")
    slot_start_time: str = Field(..., alias="slotStartTime")
    slot_end_time: str = Field(..., alias="slotEndTime")
    status: Literal["SCHEDULED"] = "SCHEDULED"
    idempotency_key: str = Field(..., alias="idempotencyKey")
    replayed: bool = False


class PublicSlot(CamelModel):
    start_time: str = Field(..., alias="startTime")
    end_time: str = Field(..., alias="endTime")
    label: str


class PublicSlotService(CamelModel):
    id: str
    name: str
    duration_minutes: int = Field(..., alias="durationMinutes")


class PublicSlotsResponse(CamelModel):
    clinic_slug: str = Field(..., alias="clinicSlug")
    date: str
    timezone: str
    service: PublicSlotService
    slots: List[PublicSlot]
