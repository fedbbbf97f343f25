# app/services/booking/booking_store.py
import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import BookingPersistenceError
from app.models import Booking, BookingStatus, CalendarSyncStatus
from app.schemas.calendar_events import CalendarSyncResult, NotificationResult
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def _needs_attention_clause():
    return or_(
        Booking.calendar_sync_status.in_(
            [CalendarSyncStatus.FAILED.value, CalendarSyncStatus.PENDING.value]
        ),
        Booking.email_sent_to_customer.is_(False),
        Booking.email_sent_to_admin.is_(False),
    )


class BookingStore:
    """Persistence for bookings and their side-effect outcome columns"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, booking_id: UUID) -> Optional[Booking]:
        return self.db.get(Booking, booking_id)

    def get_for_business(self, business_id: UUID, booking_id: UUID) -> Optional[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.id == booking_id, Booking.business_id == business_id)
            .first()
        )

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.idempotency_key == idempotency_key)
            .first()
        )

    def insert_booking_if_absent(self, idempotency_key: str, **fields) -> Tuple[Booking, bool]:
        """
        Insert a booking unless one already holds the idempotency key.

        Returns:
            (booking, created); created is False when a concurrent request
            with the same key won the insert

        Raises:
            BookingPersistenceError: the row could not be written
        """
        booking = Booking(
            idempotency_key=idempotency_key,
            status=BookingStatus.PENDING.value,
            calendar_sync_status=CalendarSyncStatus.PENDING.value,
            email_sent_to_customer=False,
            email_sent_to_admin=False,
            **fields,
        )
        try:
            self.db.add(booking)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(f"Idempotency key {idempotency_key} already stored as booking {existing.id}")
                return existing, False
            raise BookingPersistenceError(f"Failed to save booking: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise BookingPersistenceError(f"Failed to save booking: {e}") from e

        self.db.refresh(booking)
        return booking, True

    def update_booking_sync_status(self, booking: Booking, result: CalendarSyncResult) -> Booking:
        """Record a calendar outcome; a synced booking is never downgraded"""
        if booking.calendar_sync_status == CalendarSyncStatus.SYNCED.value:
            return booking

        booking.calendar_sync_status = result.status.value
        if result.status == CalendarSyncStatus.SYNCED:
            booking.calendar_event_id = result.event_id
            booking.calendar_synced_at = utcnow()
            booking.last_sync_error = None
        elif result.status == CalendarSyncStatus.FAILED:
            booking.last_sync_error = result.error
        else:
            booking.last_sync_error = None
        self._commit()
        return booking

    def update_booking_email_flags(self, booking: Booking, result: NotificationResult) -> Booking:
        """Record email outcomes; a flag that is already true stays true"""
        booking.email_sent_to_customer = bool(booking.email_sent_to_customer or result.customer_sent)
        booking.email_sent_to_admin = bool(booking.email_sent_to_admin or result.admin_sent)
        self._commit()
        return booking

    def mark_cancelled(self, booking: Booking) -> Booking:
        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = utcnow()
        self._commit()
        return booking

    def list_for_business(
        self,
        business_id: UUID,
        status: Optional[str] = None,
        needs_attention: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Booking], int]:
        query = self.db.query(Booking).filter(Booking.business_id == business_id)
        if status:
            query = query.filter(Booking.status == status)
        if needs_attention is True:
            query = query.filter(_needs_attention_clause())

        total = query.count()
        bookings = (
            query.order_by(Booking.start_time.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return bookings, total

    def find_needing_reconciliation(self, since: datetime, limit: int) -> List[Booking]:
        """Recent, non-cancelled bookings with a side effect that did not land"""
        return (
            self.db.query(Booking)
            .filter(
                Booking.created_at >= since,
                Booking.status != BookingStatus.CANCELLED.value,
                _needs_attention_clause(),
            )
            .order_by(Booking.created_at.asc())
            .limit(limit)
            .all()
        )

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
