# app/schemas/booking.py
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.booking import CalendarSyncStatus


class BookingCreateRequest(BaseModel):
    """Inbound booking request"""
    business_id: UUID = Field(..., description="Tenant identifier")
    customer_name: str = Field(..., min_length=1, max_length=200, description="Customer name")
    customer_email: str = Field(..., min_length=3, max_length=320, description="Customer email")
    customer_phone: Optional[str] = Field(None, max_length=40, description="Customer phone")
    start_time: datetime = Field(
        ...,
        description="Start instant; a naive value is read in the tenant's timezone",
    )
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60, description="Duration in minutes")
    service_id: Optional[UUID] = Field(None, description="Referenced service/catalog item")
    service_type: Optional[str] = Field(None, max_length=200, description="Free-text service name")
    notes: Optional[str] = Field(None, max_length=2000, description="Customer notes")
    payment_amount: Optional[Decimal] = Field(None, ge=0, description="Amount quoted at checkout")
    payment_status: str = Field("pending", max_length=20, description="Informational payment status")
    payment_id: Optional[str] = Field(None, max_length=200)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)

    @field_validator("customer_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("customer_name must not be blank")
        return v

    @field_validator("customer_email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        v = v.strip()
        local, _, domain = v.partition("@")
        if not local or not domain or "." not in domain:
            raise ValueError("customer_email is not a valid email address")
        return v

    @field_validator("customer_phone", "service_type", "notes", "payment_id")
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class EmailSentFlags(BaseModel):
    customer: bool = Field(False, description="Confirmation reached the customer")
    admin: bool = Field(False, description="Notification reached the tenant admin")


class BookingCreateResponse(BaseModel):
    """Composite result of the booking workflow"""
    success: bool = Field(True)
    booking_id: str = Field(..., description="Created (or previously created) booking ID")
    calendar_sync_status: CalendarSyncStatus = Field(..., description="Remote calendar outcome")
    calendar_event_id: Optional[str] = Field(None, description="Remote event ID when synced")
    email_sent: EmailSentFlags = Field(default_factory=EmailSentFlags)
    trace_id: str = Field(..., description="Trace ID of this request")
    idempotency_key: str = Field(..., description="Key the booking is stored under")
    idempotent_replay: bool = Field(False, description="True when an existing booking was returned")


class ErrorResponse(BaseModel):
    success: bool = Field(False)
    error: str = Field(..., description="Human-readable failure message")
    trace_id: str = Field(..., description="Trace ID of the failed request")


class BookingCancelResponse(BaseModel):
    booking_id: str
    status: str
    calendar_event_removed: bool
    trace_id: str


class BookingListResponse(BaseModel):
    business_id: str
    total: int
    skip: int
    limit: int
    bookings: List[dict]
