# app/schemas/calendar_events.py
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.models.booking import CalendarSyncStatus


class CalendarSyncResult(BaseModel):
    """Outcome of one calendar sync attempt: synced, skipped or failed"""
    status: CalendarSyncStatus = Field(..., description="Sync outcome")
    event_id: Optional[str] = Field(None, description="Remote event ID (synced only)")
    reason: Optional[str] = Field(None, description="Why the sync was skipped")
    error: Optional[str] = Field(None, description="Failure detail for operators")

    @classmethod
    def synced(cls, event_id: str) -> "CalendarSyncResult":
        return cls(status=CalendarSyncStatus.SYNCED, event_id=event_id)

    @classmethod
    def skipped(cls, reason: str) -> "CalendarSyncResult":
        return cls(status=CalendarSyncStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: str) -> "CalendarSyncResult":
        return cls(status=CalendarSyncStatus.FAILED, error=error)


class NotificationResult(BaseModel):
    """Per-recipient outcome of the confirmation emails"""
    customer_sent: bool = Field(False)
    admin_sent: bool = Field(False)


class CalendarConnectionStatus(BaseModel):
    """Tenant-facing view of the calendar integration (never exposes tokens)"""
    business_id: str
    connected: bool
    provider: Optional[str] = None
    calendar_id: Optional[str] = None
    token_expires_at: Optional[datetime] = None


class CalendarSelection(BaseModel):
    calendar_id: str = Field(..., min_length=1, max_length=255, description="Target calendar ID")
