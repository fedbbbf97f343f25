# ===== app/models/booking.py =====
"""
Booking Model - the unit of work of the booking workflow.
Calendar and email columns record the outcome of each side effect.
"""
import enum
import uuid
from datetime import timedelta

from sqlalchemy import Column, String, Integer, Text, DateTime, Boolean, Numeric, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.models.base import Base


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CalendarSyncStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)

    # Retries with the same key must observe this row instead of inserting another
    idempotency_key = Column(String(255), nullable=False, unique=True, index=True)
    trace_id = Column(String(100), nullable=True)

    # Scheduling (absolute instant; timezone only tags display / remote event)
    start_time = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    business_timezone = Column(String(50), nullable=False)

    # Customer info
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(320), nullable=False)
    customer_phone = Column(String(40), nullable=True)
    notes = Column(Text, nullable=True)

    # Commercial context
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=True)
    service_type = Column(String(200), nullable=False, default="Appointment")
    price_snapshot = Column(Numeric(10, 2), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")  # informational only
    payment_id = Column(String(200), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    # Calendar sync
    calendar_sync_status = Column(String(20), nullable=False, default=CalendarSyncStatus.PENDING.value)
    calendar_event_id = Column(String(255), nullable=True)
    last_sync_error = Column(Text, nullable=True)
    calendar_synced_at = Column(DateTime(timezone=True), nullable=True)

    # Notifications
    email_sent_to_customer = Column(Boolean, nullable=False, default=False)
    email_sent_to_admin = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Booking(id={self.id}, business_id={self.business_id}, status={self.status})>"

    @property
    def end_time(self):
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def needs_attention(self) -> bool:
        """Operator-facing soft warning: a side effect did not land"""
        return (
            self.calendar_sync_status in (CalendarSyncStatus.FAILED.value, CalendarSyncStatus.PENDING.value)
            or not self.email_sent_to_customer
            or not self.email_sent_to_admin
        )

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "business_id": str(self.business_id),
            "idempotency_key": self.idempotency_key,
            "trace_id": self.trace_id,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "duration_minutes": self.duration_minutes,
            "business_timezone": self.business_timezone,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "service_id": str(self.service_id) if self.service_id else None,
            "service_type": self.service_type,
            "price_snapshot": float(self.price_snapshot) if self.price_snapshot is not None else None,
            "payment_status": self.payment_status,
            "status": self.status,
            "calendar_sync_status": self.calendar_sync_status,
            "calendar_event_id": self.calendar_event_id,
            "last_sync_error": self.last_sync_error,
            "email_sent_to_customer": self.email_sent_to_customer,
            "email_sent_to_admin": self.email_sent_to_admin,
            "needs_attention": self.needs_attention,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
