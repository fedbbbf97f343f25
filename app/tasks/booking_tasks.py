# ===== app/tasks/booking_tasks.py =====
from typing import Optional
from uuid import UUID
import logging

from app.config.celery_config import celery_app
from app.config.database import SessionLocal
from app.core.tracing import trace_context
from app.services.booking.reconciliation_service import BookingReconciler

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def reconcile_booking(self, booking_id: str, trace_id: Optional[str] = None):
    """
    Retry the calendar sync and emails of one booking that did not complete

    Args:
        booking_id: Booking UUID
        trace_id: Trace of the run that enqueued this one (a new one is started otherwise)
    """
    with trace_context(trace_id):
        db = SessionLocal()
        try:
            return BookingReconciler(db).reconcile(UUID(booking_id))
        except Exception as exc:
            logger.error(f"Reconciliation failed for booking {booking_id}: {exc}")
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        finally:
            db.close()


@celery_app.task
def reconcile_recent_bookings(limit: Optional[int] = None):
    """Periodic scan: enqueue reconciliation for recent bookings needing attention"""
    with trace_context() as trace_id:
        db = SessionLocal()
        try:
            booking_ids = BookingReconciler(db).find_candidates(limit=limit)
        finally:
            db.close()

        for booking_id in booking_ids:
            reconcile_booking.delay(str(booking_id), trace_id)

        logger.info(f"Queued reconciliation for {len(booking_ids)} bookings")
        return {"status": "success", "queued": len(booking_ids)}
