# app/services/booking/booking_service.py
"""
Booking workflow

A booking is persisted first; calendar sync and notifications are then
attempted once each and their outcomes recorded on the row. Only a
failure to persist fails the request.

    guard -> persist -> calendar_sync -> notify
"""
import logging
from contextlib import contextmanager
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import BookingNotFoundError, BookingPersistenceError, BookingValidationError
from app.core.tracing import ensure_trace_id
from app.models import Booking, BookingStatus, Business, CalendarSyncStatus, Service
from app.schemas.booking import (
    BookingCancelResponse,
    BookingCreateRequest,
    BookingCreateResponse,
    EmailSentFlags,
)
from app.schemas.calendar_events import CalendarSyncResult, NotificationResult
from app.services.booking.booking_store import BookingStore
from app.services.booking.idempotency_service import IdempotencyGuard
from app.services.calendar.calendar_sync_service import CalendarSyncOrchestrator
from app.services.notification.notification_service import NotificationDispatcher
from app.utils.time_utils import localize, resolve_timezone

settings = get_settings()

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "Appointment"


class BookingWorkflowCoordinator:

    def __init__(
        self,
        db: Session,
        store: Optional[BookingStore] = None,
        guard: Optional[IdempotencyGuard] = None,
        calendar_sync: Optional[CalendarSyncOrchestrator] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.store = store or BookingStore(db)
        self.guard = guard or IdempotencyGuard(db, store=self.store)
        self.calendar_sync = calendar_sync or CalendarSyncOrchestrator(db)
        self.notifier = notifier or NotificationDispatcher(db)

    # ---- create ----

    def create_booking(
        self,
        request: BookingCreateRequest,
        idempotency_key: Optional[str] = None,
    ) -> BookingCreateResponse:
        """
        Run the booking workflow for one request.

        Args:
            request: validated booking payload
            idempotency_key: key from the Idempotency-Key header; the body's
                key is used when absent, and one is derived when both are

        Raises:
            BookingValidationError: rejected before anything was written
            BookingPersistenceError: the booking row could not be stored
        """
        trace_id = ensure_trace_id()

        with self._reading("business"):
            business = self._get_business(request.business_id)
        tz_name = resolve_timezone(business.timezone)
        start_time = localize(request.start_time, tz_name)

        key = self.guard.resolve_key(
            idempotency_key or request.idempotency_key,
            business.id,
            request.customer_email,
            start_time,
        )
        log = {"trace_id": trace_id, "step": "idempotency"}

        with self._reading("existing booking"):
            existing = self.guard.find_existing(key)
        if existing is not None:
            return self._replay(existing, business.id, key, trace_id)
        logger.info(f"No booking under key {key}, continuing", extra=log)

        with self._reading("service"):
            service = self._get_service(business.id, request.service_id)
        duration = (
            request.duration_minutes
            or (service.duration if service and service.duration else None)
            or settings.DEFAULT_BOOKING_DURATION_MINUTES
        )
        price = service.price if service is not None and service.price is not None else request.payment_amount

        booking, created = self.store.insert_booking_if_absent(
            key,
            business_id=business.id,
            trace_id=trace_id,
            start_time=start_time,
            duration_minutes=duration,
            business_timezone=tz_name,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            notes=request.notes,
            service_id=service.id if service else None,
            service_type=(service.name if service else None) or request.service_type or DEFAULT_SERVICE_NAME,
            price_snapshot=price,
            payment_status=request.payment_status,
            payment_id=request.payment_id,
        )
        if not created:
            return self._replay(booking, business.id, key, trace_id)

        # From here on the booking exists; nothing below may fail the request
        booking_id = str(booking.id)
        logger.info(
            f"Booking {booking_id} persisted for business {business.id}",
            extra={"trace_id": trace_id, "booking_id": booking_id, "step": "persist"},
        )

        try:
            sync_result = self.calendar_sync.sync_booking(booking)
        except Exception as e:
            logger.exception(
                f"Calendar sync raised for booking {booking_id}: {e}",
                extra={"trace_id": trace_id, "booking_id": booking_id, "step": "calendar_sync"},
            )
            sync_result = CalendarSyncResult.failed(f"{type(e).__name__}: {e}")
        self._record_sync(booking, booking_id, sync_result, trace_id)

        try:
            notification = self.notifier.notify(booking)
        except Exception as e:
            logger.exception(
                f"Notification raised for booking {booking_id}: {e}",
                extra={"trace_id": trace_id, "booking_id": booking_id, "step": "notify"},
            )
            notification = NotificationResult(customer_sent=False, admin_sent=False)
        self._record_notification(booking, booking_id, notification, trace_id)

        return BookingCreateResponse(
            booking_id=booking_id,
            calendar_sync_status=sync_result.status,
            calendar_event_id=sync_result.event_id,
            email_sent=EmailSentFlags(
                customer=notification.customer_sent,
                admin=notification.admin_sent,
            ),
            trace_id=trace_id,
            idempotency_key=key,
        )

    def _replay(self, booking: Booking, business_id: UUID, key: str, trace_id: str) -> BookingCreateResponse:
        """Stored outcome of an earlier request with the same key; no side effects"""
        if booking.business_id != business_id:
            raise BookingValidationError("idempotency_key is already in use")

        logger.info(
            f"Returning existing booking {booking.id} for key {key}",
            extra={"trace_id": trace_id, "booking_id": str(booking.id), "step": "idempotency"},
        )
        return BookingCreateResponse(
            booking_id=str(booking.id),
            calendar_sync_status=CalendarSyncStatus(booking.calendar_sync_status),
            calendar_event_id=booking.calendar_event_id,
            email_sent=EmailSentFlags(
                customer=booking.email_sent_to_customer,
                admin=booking.email_sent_to_admin,
            ),
            trace_id=trace_id,
            idempotency_key=key,
            idempotent_replay=True,
        )

    def _get_business(self, business_id: UUID) -> Business:
        business = self.db.get(Business, business_id)
        if business is None or business.is_active is False:
            raise BookingValidationError(f"Business {business_id} not found")
        return business

    def _get_service(self, business_id: UUID, service_id: Optional[UUID]) -> Optional[Service]:
        if service_id is None:
            return None
        service = self.db.get(Service, service_id)
        if service is None or service.business_id != business_id or service.is_active is False:
            raise BookingValidationError(f"Service {service_id} not found")
        return service

    @contextmanager
    def _reading(self, what: str):
        """Store failures before the insert become BookingPersistenceError"""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to load {what}: {e}", extra={"step": "lookup"})
            raise BookingPersistenceError(f"Failed to load {what}: {e}") from e

    def _record_sync(self, booking: Booking, booking_id: str, result: CalendarSyncResult, trace_id: str):
        extra = {"trace_id": trace_id, "booking_id": booking_id, "step": "calendar_sync"}
        try:
            self.store.update_booking_sync_status(booking, result)
        except SQLAlchemyError as e:
            logger.error(f"Could not record calendar status {result.status.value}: {e}", extra=extra)

    def _record_notification(self, booking: Booking, booking_id: str, result: NotificationResult, trace_id: str):
        extra = {"trace_id": trace_id, "booking_id": booking_id, "step": "notify"}
        try:
            self.store.update_booking_email_flags(booking, result)
        except SQLAlchemyError as e:
            logger.error(f"Could not record email flags: {e}", extra=extra)

    # ---- cancel ----

    def cancel_booking(self, business_id: UUID, booking_id: UUID) -> BookingCancelResponse:
        """Cancel a booking and best-effort remove its calendar event"""
        trace_id = ensure_trace_id()
        booking = self.store.get_for_business(business_id, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        removed = False
        if booking.status != BookingStatus.CANCELLED.value:
            removed = self.calendar_sync.remove_event(booking)
            self.store.mark_cancelled(booking)
            logger.info(
                f"Booking {booking.id} cancelled (calendar event removed: {removed})",
                extra={"trace_id": trace_id, "booking_id": str(booking.id), "step": "cancel"},
            )

        return BookingCancelResponse(
            booking_id=str(booking.id),
            status=booking.status,
            calendar_event_removed=removed,
            trace_id=trace_id,
        )
