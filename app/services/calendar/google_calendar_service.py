# app/services/calendar/google_calendar_service.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote
import logging

import requests
from google_auth_oauthlib.flow import Flow

from app.config.settings import get_settings
from app.core.exceptions import CalendarAPIError
from app.core.tracing import TRACE_HEADER, get_trace_id
from app.services.calendar.token_service import OAuthClientConfig

settings = get_settings()

logger = logging.getLogger(__name__)

# Deleting an event that is already gone is not an error
GONE_STATUSES = (404, 410)


class GoogleCalendarService:
    """Thin client for the Google Calendar REST API and its OAuth handshake"""
    SCOPES = ['https://www.googleapis.com/auth/calendar.events']

    def __init__(self, http: Optional[requests.Session] = None):
        self.http = http or requests.Session()
        self.api_base = settings.GOOGLE_CALENDAR_API_BASE.rstrip("/")
        self.timeout = settings.OUTBOUND_TIMEOUT_SECONDS

    # ---- OAuth handshake ----

    def _build_flow(self, client: OAuthClientConfig) -> Flow:
        client_config = {
            "web": {
                "client_id": client.client_id,
                "client_secret": client.client_secret,
                "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
                "auth_uri": settings.GOOGLE_AUTH_URI,
                "token_uri": settings.GOOGLE_TOKEN_URI,
            }
        }
        # The callback runs on a fresh Flow, so no PKCE verifier can be carried over
        return Flow.from_client_config(
            client_config,
            scopes=self.SCOPES,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
            autogenerate_code_verifier=False,
        )

    def generate_authorization_url(self, client: OAuthClientConfig, business_id: str) -> str:
        """Step 1: consent URL; the business id travels in `state`"""
        flow = self._build_flow(client)
        authorization_url, _ = flow.authorization_url(
            access_type='offline',  # Gets refresh token
            include_granted_scopes='true',
            prompt='consent',  # Force consent screen to get refresh token
            state=business_id,
        )
        logger.info(f"Generated calendar authorization URL for business {business_id}")
        return authorization_url

    def exchange_code(self, client: OAuthClientConfig, code: str) -> Dict[str, Any]:
        """Step 2: exchange the authorization code for tokens"""
        flow = self._build_flow(client)
        flow.fetch_token(code=code, timeout=self.timeout)
        credentials = flow.credentials
        return {
            "access_token": credentials.token,
            "refresh_token": credentials.refresh_token,
            "expires_at": credentials.expiry,  # naive UTC
        }

    # ---- Events ----

    def _headers(self, access_token: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        trace_id = get_trace_id()
        if trace_id:
            headers[TRACE_HEADER] = trace_id
        return headers

    def _events_url(self, calendar_id: str) -> str:
        return f"{self.api_base}/calendars/{quote(calendar_id, safe='')}/events"

    def create_event(self, access_token: str, calendar_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert an event into the given calendar.

        Returns:
            The created event resource

        Raises:
            CalendarAPIError: non-2xx answer, carrying the raw response body
        """
        response = self.http.post(
            self._events_url(calendar_id),
            json=event,
            headers=self._headers(access_token),
            timeout=self.timeout,
        )
        if not response.ok:
            raise CalendarAPIError(response.status_code, response.text)
        payload = _payload(response)
        return payload if isinstance(payload, dict) else {}

    def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> List[Dict[str, Any]]:
        """Expanded (single) events between time_min and time_max, ordered by start"""
        response = self.http.get(
            self._events_url(calendar_id),
            params={
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
            headers=self._headers(access_token),
            timeout=self.timeout,
        )
        if not response.ok:
            raise CalendarAPIError(response.status_code, response.text)
        payload = _payload(response)
        return payload.get("items", []) if isinstance(payload, dict) else []

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> bool:
        """Delete an event; an event that no longer exists counts as deleted"""
        response = self.http.delete(
            f"{self._events_url(calendar_id)}/{quote(event_id, safe='')}",
            headers=self._headers(access_token),
            timeout=self.timeout,
        )
        if response.ok or response.status_code in GONE_STATUSES:
            return True
        raise CalendarAPIError(response.status_code, response.text)


def _payload(response: requests.Response):
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text

