# ============================================================================
# FILE: app/api/v1/dashboard/bookings.py
# Operator views of bookings and their side-effect outcomes
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from app.api.dependencies import get_business_id
from app.config.database import get_db
from app.core.exceptions import BookingNotFoundError
from app.models import BookingStatus
from app.schemas.booking import BookingCancelResponse, BookingListResponse
from app.services.booking.booking_service import BookingWorkflowCoordinator
from app.services.booking.booking_store import BookingStore

router = APIRouter(tags=["dashboard-bookings"])


@router.get("", response_model=BookingListResponse)
def list_bookings(
        status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
        needs_attention: Optional[bool] = Query(
            None, description="Only bookings whose calendar sync or emails did not complete"
        ),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    bookings, total = BookingStore(db).list_for_business(
        business_id,
        status=status.value if status else None,
        needs_attention=needs_attention,
        skip=skip,
        limit=limit,
    )
    return BookingListResponse(
        business_id=str(business_id),
        total=total,
        skip=skip,
        limit=limit,
        bookings=[booking.to_dict() for booking in bookings],
    )


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
        booking_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    """Cancel a booking; its calendar event is removed when possible"""
    try:
        return BookingWorkflowCoordinator(db).cancel_booking(business_id, booking_id)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/{booking_id}")
def get_booking(
        booking_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    booking = BookingStore(db).get_for_business(business_id, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking.to_dict()
