# ============================================================================
# FILE: app/api/dependencies.py
# Tenant resolution and shared services for dashboard routes
# ============================================================================
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.models import Business
from app.services.calendar.calendar_sync_service import CalendarSyncOrchestrator

# Platform authentication runs in front of this service and forwards the
# caller's tenant in this header.
BUSINESS_HEADER = "X-Business-ID"


def get_business_id(
        x_business_id: str = Header(..., alias=BUSINESS_HEADER),
        db: Session = Depends(get_db),
) -> UUID:
    """Resolve and validate the tenant of a dashboard request"""
    try:
        business_id = UUID(x_business_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{BUSINESS_HEADER} must be a UUID",
        )

    business = db.get(Business, business_id)
    if business is None or business.is_active is False:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Business not found",
        )
    return business_id


def get_calendar_sync(db: Session = Depends(get_db)) -> CalendarSyncOrchestrator:
    return CalendarSyncOrchestrator(db)
