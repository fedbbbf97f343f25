"""CalendarSyncOrchestrator: every outcome comes back as synced, skipped or failed."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from app.config.settings import settings
from app.core.exceptions import CalendarAPIError
from app.models import Booking, CalendarIntegration, CalendarSyncStatus
from app.services.calendar.calendar_sync_service import build_event_payload
from app.services.calendar.google_calendar_service import GoogleCalendarService
from app.utils.encryption import decrypt_token


@pytest.fixture
def booking(db, business):
    booking = Booking(
        business_id=business.id,
        idempotency_key="key-1",
        trace_id="trace-1",
        start_time=datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc),
        duration_minutes=30,
        business_timezone="America/New_York",
        customer_name="Jane Doe",
        customer_email="jane@x.com",
        service_type="Haircut",
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


class TestBuildEventPayload:

    def test_minimal_booking(self, booking):
        payload = build_event_payload(booking)

        assert payload["summary"] == "Haircut - Jane Doe"
        assert payload["description"] == "Customer: Jane Doe\nEmail: jane@x.com\nService: Haircut"
        assert payload["start"] == {"dateTime": "2026-01-05T15:00:00+00:00", "timeZone": "America/New_York"}
        assert payload["end"] == {"dateTime": "2026-01-05T15:30:00+00:00", "timeZone": "America/New_York"}
        assert payload["attendees"] == [{"email": "jane@x.com", "displayName": "Jane Doe"}]

    def test_optional_fields_appended_when_present(self, booking):
        booking.customer_phone = "+1 555 0100"
        booking.notes = "Please use the side door"

        description = build_event_payload(booking)["description"]

        assert description == (
            "Customer: Jane Doe\nEmail: jane@x.com\nPhone: +1 555 0100"
            "\nService: Haircut\n\nNotes: Please use the side door"
        )

    def test_price_line_when_price_known(self, booking):
        booking.price_snapshot = Decimal("45")

        description = build_event_payload(booking)["description"]

        assert description.endswith("\nService: Haircut\nPrice: $45.00")


class TestSyncBooking:

    def test_not_connected_is_skipped_quietly(self, calendar_sync, booking, calendar_http, caplog):
        with caplog.at_level(logging.INFO):
            result = calendar_sync.sync_booking(booking)

        assert result.status == CalendarSyncStatus.SKIPPED
        assert result.reason == "not connected"
        calendar_http.post.assert_not_called()
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    def test_synced_with_event_id(self, calendar_sync, booking, connect_calendar, calendar_http):
        connect_calendar(access="access-live")

        result = calendar_sync.sync_booking(booking)

        assert result.status == CalendarSyncStatus.SYNCED
        assert result.event_id == "evt_123"
        url = calendar_http.post.call_args.args[0]
        kwargs = calendar_http.post.call_args.kwargs
        assert url.endswith("/calendars/primary/events")
        assert kwargs["headers"]["Authorization"] == "Bearer access-live"
        assert kwargs["json"]["summary"] == "Haircut - Jane Doe"
        assert kwargs["timeout"] > 0

    def test_configured_calendar_id_is_url_encoded(self, calendar_sync, booking, connect_calendar, calendar_http):
        connect_calendar(calendar_id="team@group.calendar.google.com")

        calendar_sync.sync_booking(booking)

        url = calendar_http.post.call_args.args[0]
        assert "/calendars/team%40group.calendar.google.com/events" in url

    def test_non_2xx_is_failed_with_payload(
        self, calendar_sync, booking, connect_calendar, calendar_http, http_response
    ):
        connect_calendar()
        body = '{"error": {"code": 403, "message": "Insufficient Permission"}}'
        calendar_http.post.return_value = http_response(403, text=body)

        result = calendar_sync.sync_booking(booking)

        assert result.status == CalendarSyncStatus.FAILED
        assert body in result.error

    def test_timeout_is_failed(self, calendar_sync, booking, connect_calendar, calendar_http):
        connect_calendar()
        calendar_http.post.side_effect = requests.Timeout("read timed out")

        result = calendar_sync.sync_booking(booking)

        assert result.status == CalendarSyncStatus.FAILED
        assert "read timed out" in result.error

    def test_missing_event_id_is_failed(self, calendar_sync, booking, connect_calendar, calendar_http, http_response):
        connect_calendar()
        calendar_http.post.return_value = http_response(200, {"status": "confirmed"})

        assert calendar_sync.sync_booking(booking).status == CalendarSyncStatus.FAILED

    def test_refresh_failure_is_failed_and_keeps_tokens(
        self, db, calendar_sync, booking, connect_calendar, oauth_client, token_http, calendar_http, http_response
    ):
        connect_calendar(expires_in=timedelta(hours=-2), access="access-stale")
        token_http.post.return_value = http_response(400, {"error": "invalid_grant"})

        result = calendar_sync.sync_booking(booking)

        assert result.status == CalendarSyncStatus.FAILED
        calendar_http.post.assert_not_called()
        db.expire_all()
        stored = db.query(CalendarIntegration).one()
        assert decrypt_token(stored.access_token_encrypted) == "access-stale"

    def test_expired_token_refreshed_before_create(
        self, db, calendar_sync, booking, connect_calendar, oauth_client, token_http, calendar_http, http_response
    ):
        connect_calendar(expires_in=timedelta(hours=-2))
        token_http.post.return_value = http_response(200, {"access_token": "access-fresh", "expires_in": 3599})

        result = calendar_sync.sync_booking(booking)

        assert result.status == CalendarSyncStatus.SYNCED
        assert token_http.post.call_count == 1
        assert calendar_http.post.call_args.kwargs["headers"]["Authorization"] == "Bearer access-fresh"

    def test_trace_id_forwarded(self, calendar_sync, booking, connect_calendar, calendar_http):
        from app.core.tracing import trace_context

        connect_calendar()
        with trace_context("trace-forward"):
            calendar_sync.sync_booking(booking)

        assert calendar_http.post.call_args.kwargs["headers"]["X-Trace-ID"] == "trace-forward"


class TestRemoveEvent:

    def test_no_event_id(self, calendar_sync, booking, calendar_http):
        assert calendar_sync.remove_event(booking) is False
        calendar_http.delete.assert_not_called()

    def test_deleted(self, calendar_sync, booking, connect_calendar, calendar_http):
        connect_calendar()
        booking.calendar_event_id = "evt_9"

        assert calendar_sync.remove_event(booking) is True
        assert calendar_http.delete.call_args.args[0].endswith("/calendars/primary/events/evt_9")

    @pytest.mark.parametrize("status_code", [404, 410])
    def test_already_gone_counts_as_removed(
        self, calendar_sync, booking, connect_calendar, calendar_http, http_response, status_code
    ):
        connect_calendar()
        booking.calendar_event_id = "evt_9"
        calendar_http.delete.return_value = http_response(status_code, text="Not Found")

        assert calendar_sync.remove_event(booking) is True

    def test_api_error_is_swallowed(self, calendar_sync, booking, connect_calendar, calendar_http, http_response):
        connect_calendar()
        booking.calendar_event_id = "evt_9"
        calendar_http.delete.return_value = http_response(500, text="backend error")

        assert calendar_sync.remove_event(booking) is False


class TestListEvents:

    def test_not_connected_returns_none(self, calendar_sync, calendar_http):
        from uuid import uuid4

        assert calendar_sync.list_events(uuid4()) is None
        calendar_http.get.assert_not_called()

    def test_window_and_query(self, calendar_sync, business, connect_calendar, calendar_http, http_response):
        connect_calendar(access="access-live")
        calendar_http.get.return_value = http_response(200, {"items": [{"id": "evt_1"}, {"id": "evt_2"}]})
        now = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)

        events = calendar_sync.list_events(business.id, now=now)

        assert [e["id"] for e in events] == ["evt_1", "evt_2"]
        kwargs = calendar_http.get.call_args.kwargs
        assert kwargs["params"] == {
            "timeMin": "2025-12-31T12:00:00+00:00",
            "timeMax": "2026-04-30T12:00:00+00:00",
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        assert kwargs["headers"]["Authorization"] == "Bearer access-live"
        assert kwargs["timeout"] > 0

    def test_expired_token_refreshed_before_listing(
        self, calendar_sync, business, connect_calendar, oauth_client, token_http, calendar_http, http_response
    ):
        connect_calendar(expires_in=timedelta(hours=-2))
        token_http.post.return_value = http_response(200, {"access_token": "access-fresh", "expires_in": 3599})
        calendar_http.get.return_value = http_response(200, {"items": []})

        assert calendar_sync.list_events(business.id) == []
        assert token_http.post.call_count == 1
        assert calendar_http.get.call_args.kwargs["headers"]["Authorization"] == "Bearer access-fresh"

    def test_non_2xx_raises(self, calendar_sync, business, connect_calendar, calendar_http, http_response):
        connect_calendar()
        calendar_http.get.return_value = http_response(403, text="Insufficient Permission")

        with pytest.raises(CalendarAPIError) as exc_info:
            calendar_sync.list_events(business.id)

        assert exc_info.value.status_code == 403
        assert exc_info.value.payload == "Insufficient Permission"


class TestExchangeCode:

    def test_token_request_is_bounded(self, monkeypatch):
        from app.services.calendar.token_service import OAuthClientConfig

        flow = MagicMock()
        flow.credentials.token = "access-cb"
        flow.credentials.refresh_token = "refresh-cb"
        flow.credentials.expiry = datetime(2026, 1, 5, 16, 0)
        monkeypatch.setattr(GoogleCalendarService, "_build_flow", lambda self, client: flow)
        service = GoogleCalendarService(http=MagicMock())

        grant = service.exchange_code(OAuthClientConfig("client-123", "secret-456"), "auth-code")

        flow.fetch_token.assert_called_once_with(code="auth-code", timeout=settings.OUTBOUND_TIMEOUT_SECONDS)
        assert grant == {
            "access_token": "access-cb",
            "refresh_token": "refresh-cb",
            "expires_at": datetime(2026, 1, 5, 16, 0),
        }
