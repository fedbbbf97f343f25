# app/services/booking/reconciliation_service.py
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.tracing import get_trace_id
from app.models import BookingStatus, CalendarSyncStatus
from app.services.booking.booking_store import BookingStore
from app.services.calendar.calendar_sync_service import CalendarSyncOrchestrator
from app.services.notification.notification_service import NotificationDispatcher
from app.utils.time_utils import utcnow

settings = get_settings()

logger = logging.getLogger(__name__)

RETRYABLE_SYNC_STATUSES = (CalendarSyncStatus.PENDING.value, CalendarSyncStatus.FAILED.value)


class BookingReconciler:
    """
    Re-attempts side effects that did not land during the booking request.

    Only effects recorded as pending/failed (calendar) or false (email)
    are retried; synced events and sent emails are never repeated.
    """

    def __init__(
        self,
        db: Session,
        store: Optional[BookingStore] = None,
        calendar_sync: Optional[CalendarSyncOrchestrator] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.store = store or BookingStore(db)
        self.calendar_sync = calendar_sync or CalendarSyncOrchestrator(db)
        self.notifier = notifier or NotificationDispatcher(db)

    def reconcile(self, booking_id: UUID) -> Dict[str, Any]:
        booking = self.store.get(booking_id)
        if booking is None:
            return {"status": "failed", "reason": "booking_not_found"}
        if booking.status == BookingStatus.CANCELLED.value:
            return {"status": "skipped", "reason": "booking_cancelled"}

        extra = {"trace_id": get_trace_id(), "booking_id": str(booking.id), "step": "reconcile"}
        actions: List[str] = []

        if booking.calendar_sync_status in RETRYABLE_SYNC_STATUSES:
            result = self.calendar_sync.sync_booking(booking)
            self.store.update_booking_sync_status(booking, result)
            actions.append(f"calendar:{result.status.value}")

        send_customer = not booking.email_sent_to_customer
        send_admin = not booking.email_sent_to_admin
        if send_customer or send_admin:
            result = self.notifier.notify(booking, send_customer=send_customer, send_admin=send_admin)
            self.store.update_booking_email_flags(booking, result)
            actions.append(f"email:customer={result.customer_sent},admin={result.admin_sent}")

        logger.info(f"Reconciled booking {booking.id}: {actions or 'nothing to do'}", extra=extra)
        return {
            "status": "success",
            "booking_id": str(booking.id),
            "actions": actions,
            "needs_attention": booking.needs_attention,
        }

    def find_candidates(self, limit: Optional[int] = None, max_age_hours: Optional[int] = None) -> List[UUID]:
        since = utcnow() - timedelta(hours=max_age_hours or settings.RECONCILE_MAX_AGE_HOURS)
        bookings = self.store.find_needing_reconciliation(since, limit or settings.RECONCILE_BATCH_SIZE)
        return [booking.id for booking in bookings]
