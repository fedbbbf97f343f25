"""
API v1 router setup
Organized into: public (storefront) and dashboard (tenant operator) routes
"""
from fastapi import APIRouter

from app.api.v1.public import bookings as public_bookings
from app.api.v1.dashboard import bookings as dashboard_bookings, calendar

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (No tenant header; business_id is in the body)
# ============================================================================
api_v1_router.include_router(
    public_bookings.router,
    prefix="/public/bookings",
    tags=["Public"]
)

# ============================================================================
# DASHBOARD ROUTES (X-Business-ID forwarded by the platform)
# ============================================================================
api_v1_router.include_router(
    dashboard_bookings.router,
    prefix="/dashboard/bookings",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    calendar.router,
    prefix="/dashboard/calendar",
    tags=["Dashboard"]
)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and route groups"""
    return {
        "version": "1.0",
        "routes": {
            "public": "/api/v1/public/bookings",
            "dashboard": "/api/v1/dashboard/{bookings,calendar} (X-Business-ID header required)",
        }
    }
