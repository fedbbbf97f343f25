# app/services/calendar/calendar_sync_service.py
"""
Pushes bookings into the tenant's remote calendar.

Every outcome is reported as a CalendarSyncResult; nothing raised by the
token exchange or the calendar API escapes to the booking workflow.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import CalendarAPIError, OAuthConfigError, TokenRefreshError
from app.core.tracing import get_trace_id
from app.models import Booking
from app.schemas.calendar_events import CalendarSyncResult
from app.services.calendar.google_calendar_service import GoogleCalendarService
from app.services.calendar.token_service import TokenLifecycleManager
from app.utils.time_utils import add_months, as_utc, utcnow

logger = logging.getLogger(__name__)

NOT_CONNECTED = "not connected"
DEFAULT_CALENDAR_ID = "primary"

# Dashboard event window around "now"
EVENTS_MONTHS_BACK = 1
EVENTS_MONTHS_AHEAD = 3


def build_event_payload(booking: Booking) -> Dict[str, Any]:
    """Calendar event body for a booking"""
    description = f"Customer: {booking.customer_name}\nEmail: {booking.customer_email}"
    if booking.customer_phone:
        description += f"\nPhone: {booking.customer_phone}"
    if booking.service_type:
        description += f"\nService: {booking.service_type}"
    if booking.price_snapshot is not None:
        description += f"\nPrice: ${booking.price_snapshot:.2f}"
    if booking.notes:
        description += f"\n\nNotes: {booking.notes}"

    start = as_utc(booking.start_time)
    end = as_utc(booking.end_time)

    return {
        "summary": f"{booking.service_type or 'Appointment'} - {booking.customer_name}",
        "description": description,
        "start": {"dateTime": start.isoformat(), "timeZone": booking.business_timezone},
        "end": {"dateTime": end.isoformat(), "timeZone": booking.business_timezone},
        "attendees": [
            {"email": booking.customer_email, "displayName": booking.customer_name},
        ],
        "extendedProperties": {
            "private": {"booking_id": str(booking.id), "trace_id": booking.trace_id or ""},
        },
    }


class CalendarSyncOrchestrator:

    def __init__(
        self,
        db: Session,
        tokens: Optional[TokenLifecycleManager] = None,
        calendar: Optional[GoogleCalendarService] = None,
    ):
        self.db = db
        self.tokens = tokens or TokenLifecycleManager(db)
        self.calendar = calendar or GoogleCalendarService()

    def _log_extra(self, booking: Booking) -> dict:
        return {"trace_id": get_trace_id(), "booking_id": str(booking.id), "step": "calendar_sync"}

    def _calendar_id(self, business_id: UUID) -> str:
        integration = self.tokens.get_integration(business_id)
        return (integration.calendar_id if integration else None) or DEFAULT_CALENDAR_ID

    def sync_booking(self, booking: Booking) -> CalendarSyncResult:
        """Create the remote event for a booking: synced, skipped or failed"""
        extra = self._log_extra(booking)
        try:
            access_token = self.tokens.get_valid_access_token(booking.business_id)
            if access_token is None:
                logger.info(f"Calendar not connected for business {booking.business_id}, skipping", extra=extra)
                return CalendarSyncResult.skipped(NOT_CONNECTED)

            event = self.calendar.create_event(
                access_token,
                self._calendar_id(booking.business_id),
                build_event_payload(booking),
            )
        except CalendarAPIError as e:
            logger.error(f"Calendar API rejected event for booking {booking.id}: {e}", extra=extra)
            return CalendarSyncResult.failed(f"Calendar API error {e.status_code}: {e.payload}")
        except (TokenRefreshError, OAuthConfigError) as e:
            logger.error(f"Could not obtain calendar access token: {e}", extra=extra)
            return CalendarSyncResult.failed(str(e))
        except Exception as e:
            logger.exception(f"Calendar sync failed for booking {booking.id}: {e}", extra=extra)
            return CalendarSyncResult.failed(f"{type(e).__name__}: {e}")

        event_id = event.get("id")
        if not event_id:
            logger.error(f"Calendar API returned no event id for booking {booking.id}", extra=extra)
            return CalendarSyncResult.failed(f"Calendar API returned no event id: {event}")

        logger.info(f"Booking {booking.id} synced to calendar as event {event_id}", extra=extra)
        return CalendarSyncResult.synced(event_id)

    def remove_event(self, booking: Booking) -> bool:
        """Best-effort removal of a booking's remote event"""
        if not booking.calendar_event_id:
            return False
        extra = self._log_extra(booking)
        try:
            access_token = self.tokens.get_valid_access_token(booking.business_id)
            if access_token is None:
                logger.info(f"Calendar not connected, leaving event {booking.calendar_event_id}", extra=extra)
                return False
            return self.calendar.delete_event(
                access_token,
                self._calendar_id(booking.business_id),
                booking.calendar_event_id,
            )
        except Exception as e:
            logger.error(f"Failed to delete calendar event {booking.calendar_event_id}: {e}", extra=extra)
            return False

    def list_events(self, business_id: UUID, now: Optional[datetime] = None) -> Optional[List[Dict[str, Any]]]:
        """
        Remote events from one month back to three months ahead.

        Returns:
            The events, or None when the tenant has no calendar connected

        Raises:
            CalendarError: token refresh or the Calendar API failed
        """
        access_token = self.tokens.get_valid_access_token(business_id)
        if access_token is None:
            return None

        now = now or utcnow()
        events = self.calendar.list_events(
            access_token,
            self._calendar_id(business_id),
            time_min=add_months(now, -EVENTS_MONTHS_BACK),
            time_max=add_months(now, EVENTS_MONTHS_AHEAD),
        )
        logger.info(f"Fetched {len(events)} calendar events for business {business_id}")
        return events
