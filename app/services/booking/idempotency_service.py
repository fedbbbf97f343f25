# app/services/booking/idempotency_service.py
import hashlib
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Booking
from app.services.booking.booking_store import BookingStore
from app.utils.time_utils import as_utc

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Recognizes retried booking submissions"""

    def __init__(self, db: Session, store: Optional[BookingStore] = None):
        self.store = store or BookingStore(db)

    @staticmethod
    def derive_key(business_id: UUID, customer_email: str, start_time: datetime) -> str:
        """
        Stable key for requests that do not carry one: the same tenant,
        customer and start instant always produce the same key.
        """
        material = f"{business_id}|{customer_email.strip().lower()}|{as_utc(start_time).isoformat()}"
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def resolve_key(
        self,
        supplied: Optional[str],
        business_id: UUID,
        customer_email: str,
        start_time: datetime,
    ) -> str:
        if supplied and supplied.strip():
            return supplied.strip()
        return self.derive_key(business_id, customer_email, start_time)

    def find_existing(self, idempotency_key: str) -> Optional[Booking]:
        """The booking already stored under this key, if any"""
        booking = self.store.get_by_idempotency_key(idempotency_key)
        if booking is not None:
            logger.info(f"Idempotency hit: key {idempotency_key} -> booking {booking.id}")
        return booking
