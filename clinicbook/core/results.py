"""Structured results returned across service boundaries"""
import enum
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorCode(str, enum.Enum):
    # Validation
    INVALID_BODY = "INVALID_BODY"
    INVALID_DATE = "INVALID_DATE"
    INVALID_SLOT_START = "INVALID_SLOT_START"

    # Business rules
    BOOKING_IN_PAST = "BOOKING_IN_PAST"
    BOOKING_LEAD_TIME_VIOLATION = "BOOKING_LEAD_TIME_VIOLATION"
    BOOKING_ADVANCE_LIMIT_VIOLATION = "BOOKING_ADVANCE_LIMIT_VIOLATION"
    DUPLICATE_BOOKING = "DUPLICATE_BOOKING"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    DAILY_NOTIFICATION_CAP_REACHED = "DAILY_NOTIFICATION_CAP_REACHED"

    # Lookups
    CLINIC_NOT_FOUND = "CLINIC_NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"

    # Notifications
    RECIPIENT_REQUIRED = "RECIPIENT_REQUIRED"
    RECIPIENT_EMAIL_REQUIRED = "RECIPIENT_EMAIL_REQUIRED"
    RECIPIENT_PHONE_REQUIRED = "RECIPIENT_PHONE_REQUIRED"
    NOTIFICATION_DELIVERY_FAILED = "NOTIFICATION_DELIVERY_FAILED"

    # Edge
    RATE_LIMITED = "RATE_LIMITED"

    # Replay signal
    IDEMPOTENCY_IN_PROGRESS = "IDEMPOTENCY_IN_PROGRESS"


HTTP_STATUS_BY_CODE = {
    ErrorCode.INVALID_BODY: 400,
    ErrorCode.INVALID_DATE: 400,
    ErrorCode.INVALID_SLOT_START: 400,
    ErrorCode.BOOKING_IN_PAST: 422,
    ErrorCode.BOOKING_LEAD_TIME_VIOLATION: 422,
    ErrorCode.BOOKING_ADVANCE_LIMIT_VIOLATION: 422,
    ErrorCode.DUPLICATE_BOOKING: 409,
    ErrorCode.SLOT_UNAVAILABLE: 409,
    ErrorCode.IDEMPOTENCY_IN_PROGRESS: 409,
    ErrorCode.DAILY_NOTIFICATION_CAP_REACHED: 429,
    ErrorCode.CLINIC_NOT_FOUND: 404,
    ErrorCode.SERVICE_NOT_FOUND: 404,
    ErrorCode.NOTIFICATION_NOT_FOUND: 404,
    ErrorCode.RECIPIENT_REQUIRED: 400,
    ErrorCode.RECIPIENT_EMAIL_REQUIRED: 400,
    ErrorCode.RECIPIENT_PHONE_REQUIRED: 400,
    ErrorCode.NOTIFICATION_DELIVERY_FAILED: 502,
    ErrorCode.RATE_LIMITED: 429,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failure:
    code: ErrorCode
    message: str
    details: Optional[Any] = None
    ok: bool = field(default=False, init=False)

    @property
    def status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 400)

    def to_dict(self):
        body = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


Result = Union[Ok[T], Failure]
