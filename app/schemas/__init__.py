# app/schemas/__init__.py
from .booking import (
    BookingCreateRequest,
    BookingCreateResponse,
    BookingCancelResponse,
    BookingListResponse,
    EmailSentFlags,
    ErrorResponse,
)

from .calendar_events import (
    CalendarSyncResult,
    NotificationResult,
    CalendarConnectionStatus,
    CalendarSelection,
)

__all__ = [
    "BookingCreateRequest",
    "BookingCreateResponse",
    "BookingCancelResponse",
    "BookingListResponse",
    "EmailSentFlags",
    "ErrorResponse",
    "CalendarSyncResult",
    "NotificationResult",
    "CalendarConnectionStatus",
    "CalendarSelection",
]
