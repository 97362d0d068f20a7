# clinicbook/api/v1/public/bookings.py
"""
Public Booking Endpoint
Patients book a slot without an account. Retries carrying the same
Idempotency-Key header replay the first successful response.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from clinicbook.api.dependencies import (
    failure_response,
    get_booking_controller,
    get_confirmation_enqueuer,
)
from clinicbook.config.database import get_db
from clinicbook.core.results import ErrorCode, Failure
from clinicbook.schemas.booking import PublicBookingRequest, PublicBookingResponse
from clinicbook.services.availability.slot_engine import SlotEngineError
from clinicbook.services.booking.booking_service import BookingAdmissionController

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/bookings", status_code=201, response_model=PublicBookingResponse)
def create_public_booking(
        payload: PublicBookingRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        db: Session = Depends(get_db),
        controller: BookingAdmissionController = Depends(get_booking_controller),
        enqueue_confirmation=Depends(get_confirmation_enqueuer)
):
    """
    Book a slot.

    201 for a new booking, 200 when replaying a completed request with the
    same key, 409 while that request is still in flight.
    """
    key_headers = {"X-Idempotency-Key": idempotency_key.strip()} if idempotency_key and idempotency_key.strip() else None

    try:
        result = controller.create_public_booking(db, payload, idempotency_key=idempotency_key)
    except SlotEngineError as e:
        return failure_response(Failure(ErrorCode.INVALID_DATE, str(e)), headers=key_headers)
    except Exception as e:
        logger.error(f"Error creating public booking for {payload.clinic_slug}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create booking")

    if not result.ok:
        return failure_response(result, headers=key_headers)

    outcome = result.data
    headers = {"X-Idempotency-Key": outcome.idempotency_key}

    if not outcome.replayed and enqueue_confirmation is not None:
        try:
            enqueue_confirmation(clinic_id=outcome.clinic_id, appointment_id=outcome.data["appointmentId"])
        except Exception as e:
            # The booking is committed; a missed confirmation does not undo it
            logger.error(
                f"Could not enqueue confirmation for appointment {outcome.data['appointmentId']}: {e}",
                exc_info=True
            )

    return JSONResponse(
        status_code=200 if outcome.replayed else 201,
        content=outcome.to_response(),
        headers=headers,
    )
