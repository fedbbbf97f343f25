# ============================================================================
# FILE: app/api/v1/dashboard/calendar.py
# Google Calendar connection management - thin HTTP layer
# All credential writes go through TokenLifecycleManager
# ============================================================================
import logging
from uuid import UUID

import requests
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from app.api.dependencies import get_business_id, get_calendar_sync
from app.config.database import get_db
from app.core.exceptions import CalendarError
from app.models import Business
from app.schemas.calendar_events import CalendarConnectionStatus, CalendarSelection
from app.services.calendar.calendar_sync_service import CalendarSyncOrchestrator
from app.services.calendar.google_calendar_service import GoogleCalendarService
from app.services.calendar.token_service import TokenLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["dashboard-calendar"])

CALLBACK_PAGE = """
    <html>
        <head>
            <title>{title}</title>
            <style>
                body {{
                    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
                    display: flex;
                    align-items: center;
                    justify-content: center;
                    height: 100vh;
                    margin: 0;
                    background: #f3f4f6;
                }}
                .container {{
                    text-align: center;
                    background: white;
                    padding: 3rem;
                    border-radius: 1rem;
                    box-shadow: 0 10px 40px rgba(0,0,0,0.2);
                }}
                h1 {{ color: {color}; margin: 0 0 0.5rem 0; }}
                p {{ color: #6b7280; margin: 0; }}
            </style>
        </head>
        <body>
            <div class="container">
                <h1>{title}</h1>
                <p>{message}</p>
            </div>
            <script>
                // Auto-close after 2 seconds
                setTimeout(() => window.close(), 2000);
            </script>
        </body>
    </html>
    """


def _status(business_id: UUID, tokens: TokenLifecycleManager) -> CalendarConnectionStatus:
    integration = tokens.get_integration(business_id)
    if integration is None:
        return CalendarConnectionStatus(business_id=str(business_id), connected=False)
    return CalendarConnectionStatus(
        business_id=str(business_id),
        connected=bool(integration.is_connected),
        provider=integration.provider,
        calendar_id=integration.calendar_id or "primary",
        token_expires_at=integration.token_expires_at,
    )


@router.get("/google/authorize")
def initiate_google_auth(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    """Returns the consent URL the business owner should visit"""
    tokens = TokenLifecycleManager(db)
    try:
        client = tokens.get_client_config()
    except CalendarError as e:
        raise HTTPException(status_code=503, detail=str(e))

    auth_url = GoogleCalendarService().generate_authorization_url(client, str(business_id))
    return {"authorization_url": auth_url}


@router.get("/google/callback", response_class=HTMLResponse)
def google_callback(
        code: str,
        state: str,  # business_id
        db: Session = Depends(get_db),
):
    """
    Google redirects here after authorization.
    This endpoint does NOT require the tenant header as it's a callback from Google.
    """
    try:
        business_id = UUID(state)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid state")
    if db.get(Business, business_id) is None:
        raise HTTPException(status_code=404, detail="Business not found")

    tokens = TokenLifecycleManager(db)
    try:
        client = tokens.get_client_config()
        grant = GoogleCalendarService().exchange_code(client, code)
        tokens.store_authorization(
            business_id,
            access_token=grant["access_token"],
            refresh_token=grant["refresh_token"],
            expires_at=grant["expires_at"],
        )
    except Exception as e:
        logger.error(f"Calendar authorization failed for business {business_id}: {e}")
        return HTMLResponse(
            CALLBACK_PAGE.format(
                title="Authorization Failed",
                color="#ef4444",
                message="We could not connect your calendar. Please try again.",
            ),
            status_code=400,
        )

    return HTMLResponse(
        CALLBACK_PAGE.format(
            title="Authorization Successful!",
            color="#10b981",
            message="You can close this window and return to the setup.",
        )
    )


@router.get("/google/status", response_model=CalendarConnectionStatus)
def google_status(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    return _status(business_id, TokenLifecycleManager(db))


@router.get("/google/events")
def list_google_events(
        business_id: UUID = Depends(get_business_id),
        calendar_sync: CalendarSyncOrchestrator = Depends(get_calendar_sync),
):
    """Events in the connected calendar, one month back to three months ahead"""
    try:
        events = calendar_sync.list_events(business_id)
    except (CalendarError, requests.RequestException) as e:
        logger.error(f"Failed to fetch calendar events for business {business_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch events: {e}")

    if events is None:
        raise HTTPException(status_code=404, detail="Google Calendar is not connected")
    return {"events": events}


@router.patch("/google", response_model=CalendarConnectionStatus)
def select_google_calendar(
        selection: CalendarSelection,
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    """Let business choose which Google calendar bookings go to"""
    tokens = TokenLifecycleManager(db)
    if tokens.set_calendar_id(business_id, selection.calendar_id) is None:
        raise HTTPException(status_code=404, detail="Google Calendar is not connected")
    return _status(business_id, tokens)


@router.delete("/google")
def disconnect_google_calendar(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db),
):
    if not TokenLifecycleManager(db).disconnect(business_id):
        raise HTTPException(status_code=404, detail="Google Calendar is not connected")
    return {"success": True}
