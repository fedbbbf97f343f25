"""NotificationDispatcher and the SMTP EmailService behind it."""

import logging
import smtplib
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import EmailDeliveryError, EmailNotConfiguredError
from app.models import Booking
from app.services.email.email_service import EmailService
from app.services.notification.notification_service import NotificationDispatcher
from app.utils.time_utils import format_booking_window


@pytest.fixture
def booking(db, business):
    booking = Booking(
        business_id=business.id,
        idempotency_key="key-n",
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


@pytest.fixture
def dispatcher(db, email_service):
    return NotificationDispatcher(db, email_service=email_service)


class TestFormatBookingWindow:

    def test_tenant_local_time(self):
        start = datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)
        assert format_booking_window(start, 30, "America/New_York") == (
            "Monday, January 5, 2026 from 10:00 AM to 10:30 AM"
        )

    def test_afternoon_crossing_noon(self):
        start = datetime(2026, 7, 1, 15, 45, tzinfo=timezone.utc)
        assert format_booking_window(start, 30, "America/New_York") == (
            "Wednesday, July 1, 2026 from 11:45 AM to 12:15 PM"
        )


class TestNotify:

    def test_both_sent(self, dispatcher, booking, email_service):
        result = dispatcher.notify(booking)

        assert (result.customer_sent, result.admin_sent) == (True, True)
        kwargs = email_service.send_booking_confirmation_email.call_args.kwargs
        assert kwargs["email"] == "jane@x.com"
        assert kwargs["business_name"] == "Glow Studio"
        assert kwargs["when"] == "Monday, January 5, 2026 from 10:00 AM to 10:30 AM"
        assert email_service.send_booking_admin_notification_email.call_args.kwargs["email"] == "owner@glow.test"

    def test_transport_not_configured(self, dispatcher, booking, email_service, caplog):
        email_service.is_configured.return_value = False

        with caplog.at_level(logging.WARNING):
            result = dispatcher.notify(booking)

        assert (result.customer_sent, result.admin_sent) == (False, False)
        email_service.send_booking_confirmation_email.assert_not_called()
        assert any(r.levelno == logging.WARNING for r in caplog.records)
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    def test_customer_failure_does_not_block_admin(self, dispatcher, booking, email_service):
        email_service.send_booking_confirmation_email.side_effect = EmailDeliveryError("550 mailbox unavailable")

        result = dispatcher.notify(booking)

        assert (result.customer_sent, result.admin_sent) == (False, True)

    def test_admin_failure_does_not_undo_customer(self, dispatcher, booking, email_service):
        email_service.send_booking_admin_notification_email.side_effect = RuntimeError("boom")

        result = dispatcher.notify(booking)

        assert (result.customer_sent, result.admin_sent) == (True, False)

    def test_no_admin_email(self, db, dispatcher, booking, business, email_service, caplog):
        business.admin_email = None
        db.commit()

        with caplog.at_level(logging.WARNING):
            result = dispatcher.notify(booking)

        assert (result.customer_sent, result.admin_sent) == (True, False)
        email_service.send_booking_admin_notification_email.assert_not_called()
        assert any("admin" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)

    def test_only_requested_recipients(self, dispatcher, booking, email_service):
        result = dispatcher.notify(booking, send_customer=False)

        email_service.send_booking_confirmation_email.assert_not_called()
        assert (result.customer_sent, result.admin_sent) == (False, True)

    def test_tenant_lookup_failure_sends_nothing(self, db, dispatcher, booking, email_service, caplog, monkeypatch):
        def broken_get(entity, ident, **kwargs):
            raise OperationalError("SELECT businesses", {}, Exception("server closed the connection"))

        monkeypatch.setattr(db, "get", broken_get)

        with caplog.at_level(logging.ERROR):
            result = dispatcher.notify(booking)

        assert (result.customer_sent, result.admin_sent) == (False, False)
        email_service.send_booking_confirmation_email.assert_not_called()
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert errors and errors[0].step == "notify"


class TestEmailService:

    def test_send_requires_configuration(self):
        with pytest.raises(EmailNotConfiguredError):
            EmailService.send_email("jane@x.com", "Hi", "<p>Hi</p>")

    def test_send_returns_message_id(self, email_configured, monkeypatch):
        server = MagicMock()
        smtp = MagicMock(return_value=server)
        monkeypatch.setattr(smtplib, "SMTP", smtp)

        message_id = EmailService.send_email("jane@x.com", "Hi", "<p>Hi</p>", trace_id="trace-mail")

        assert message_id.startswith("<") and message_id.endswith(">")
        assert smtp.call_args.kwargs["timeout"] > 0
        from_address, recipients, raw = server.sendmail.call_args.args
        assert from_address == "bookings@mail.test"
        assert recipients == ["jane@x.com"]
        assert "X-Trace-ID: trace-mail" in raw
        server.quit.assert_called_once()

    def test_smtp_error_raises_delivery_error(self, email_configured, monkeypatch):
        server = MagicMock()
        server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({"jane@x.com": (550, b"no such user")})
        monkeypatch.setattr(smtplib, "SMTP", MagicMock(return_value=server))

        with pytest.raises(EmailDeliveryError) as exc_info:
            EmailService.send_email("jane@x.com", "Hi", "<p>Hi</p>")

        assert exc_info.value.recipient == "jane@x.com"
        server.quit.assert_called_once()

    def test_confirmation_subject_and_optional_rows(self, monkeypatch):
        sent = {}
        monkeypatch.setattr(EmailService, "send_email", staticmethod(lambda **kw: sent.update(kw) or "<id>"))

        EmailService.send_booking_confirmation_email(
            email="jane@x.com",
            customer_name="Jane Doe",
            business_name="Glow Studio",
            service_name="Haircut",
            when="Monday, January 5, 2026 from 10:00 AM to 10:30 AM",
            duration_minutes=30,
        )

        assert sent["subject"] == "Booking Confirmation - Glow Studio"
        assert "Notes:" not in sent["html_content"]
        assert "30 minutes" in sent["html_content"]

    def test_admin_subject_and_escaping(self, monkeypatch):
        sent = {}
        monkeypatch.setattr(EmailService, "send_email", staticmethod(lambda **kw: sent.update(kw) or "<id>"))

        EmailService.send_booking_admin_notification_email(
            email="owner@glow.test",
            business_name="Glow Studio",
            customer_name="Jane Doe",
            customer_email="jane@x.com",
            service_name="Haircut",
            when="Monday, January 5, 2026 from 10:00 AM to 10:30 AM",
            duration_minutes=30,
            customer_phone="+1 555 0100",
            notes="<b>side door</b>",
        )

        assert sent["subject"] == "New Booking Request - Jane Doe"
        assert "tel:+1 555 0100" in sent["html_content"]
        assert "&lt;b&gt;side door&lt;/b&gt;" in sent["html_content"]
        assert "Customer Notes" in sent["html_content"]
