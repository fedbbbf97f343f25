# ============================================================================
# FILE: app/api/v1/public/bookings.py
# Public booking endpoint - storefront checkout posts here
# ============================================================================
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.schemas.booking import BookingCreateRequest, BookingCreateResponse, ErrorResponse
from app.services.booking.booking_service import BookingWorkflowCoordinator

router = APIRouter()


@router.post(
    "",
    response_model=BookingCreateResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def create_booking(
        request: BookingCreateRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        db: Session = Depends(get_db),
):
    """
    Create a booking, then sync it to the tenant's calendar and send the
    confirmation emails. Calendar or email problems are reported in the
    response body; only a booking that could not be saved is an error.

    Retrying with the same Idempotency-Key (or the same customer, tenant
    and start time) returns the original booking.
    """
    return BookingWorkflowCoordinator(db).create_booking(request, idempotency_key=idempotency_key)
