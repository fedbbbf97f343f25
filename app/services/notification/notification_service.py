# app/services/notification/notification_service.py
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import EmailNotConfiguredError
from app.core.tracing import get_trace_id
from app.models import Booking, Business
from app.schemas.calendar_events import NotificationResult
from app.services.email.email_service import EmailService
from app.utils.time_utils import format_booking_window, resolve_timezone

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Sends the booking confirmation to the customer and the heads-up to the
    tenant admin. The two sends are independent: one failing never stops
    the other, and neither raises.
    """

    def __init__(self, db: Session, email_service=EmailService):
        self.db = db
        self.email = email_service

    def notify(
        self,
        booking: Booking,
        send_customer: bool = True,
        send_admin: bool = True,
    ) -> NotificationResult:
        extra = {"trace_id": get_trace_id(), "booking_id": str(booking.id), "step": "notify"}

        if not self.email.is_configured():
            logger.warning("Email transport not configured; booking emails not sent", extra=extra)
            return NotificationResult(customer_sent=False, admin_sent=False)

        try:
            business = self.db.get(Business, booking.business_id)
        except SQLAlchemyError as e:
            logger.error(f"Could not load business {booking.business_id}; booking emails not sent: {e}", extra=extra)
            return NotificationResult(customer_sent=False, admin_sent=False)
        business_name = business.name if business else "our business"
        when = format_booking_window(
            booking.start_time,
            booking.duration_minutes,
            resolve_timezone(booking.business_timezone),
        )

        customer_sent = False
        if send_customer:
            customer_sent = self._send(
                "customer",
                booking.customer_email,
                extra,
                lambda: self.email.send_booking_confirmation_email(
                    email=booking.customer_email,
                    customer_name=booking.customer_name,
                    business_name=business_name,
                    service_name=booking.service_type or "Appointment",
                    when=when,
                    duration_minutes=booking.duration_minutes,
                    notes=booking.notes,
                    trace_id=extra["trace_id"],
                ),
            )

        admin_sent = False
        admin_email: Optional[str] = business.admin_email if business else None
        if send_admin and not admin_email:
            logger.warning(f"No admin email for business {booking.business_id}; admin notification not sent", extra=extra)
        elif send_admin:
            admin_sent = self._send(
                "admin",
                admin_email,
                extra,
                lambda: self.email.send_booking_admin_notification_email(
                    email=admin_email,
                    business_name=business_name,
                    customer_name=booking.customer_name,
                    customer_email=booking.customer_email,
                    service_name=booking.service_type or "Appointment",
                    when=when,
                    duration_minutes=booking.duration_minutes,
                    customer_phone=booking.customer_phone,
                    notes=booking.notes,
                    trace_id=extra["trace_id"],
                ),
            )

        return NotificationResult(customer_sent=customer_sent, admin_sent=admin_sent)

    def _send(self, recipient: str, address: str, extra: dict, send) -> bool:
        try:
            message_id = send()
        except EmailNotConfiguredError as e:
            logger.warning(f"Email transport not configured: {e}", extra=extra)
            return False
        except Exception as e:
            logger.error(f"Failed to send {recipient} email to {address}: {e}", extra=extra)
            return False

        logger.info(f"Sent {recipient} email to {address} (message {message_id})", extra=extra)
        return True
