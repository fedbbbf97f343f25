# app/core/exceptions.py
"""Error taxonomy for the booking workflow and its integrations"""
from typing import Any, Optional


class BookingError(Exception):
    """Base class for errors surfaced to the booking caller"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BookingValidationError(BookingError):
    """Request rejected before anything was persisted"""


class BookingPersistenceError(BookingError):
    """The booking row could not be written; nothing exists to report on"""


class BookingNotFoundError(BookingError):
    pass


class CalendarError(Exception):
    """Base class for calendar integration failures"""


class OAuthConfigError(CalendarError):
    """Platform-wide OAuth client id/secret are missing"""


class TokenRefreshError(CalendarError):
    """Refresh-token exchange was rejected or could not complete"""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class CalendarAPIError(CalendarError):
    """Remote calendar answered with a non-2xx status"""

    def __init__(self, status_code: int, payload: Any):
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"Calendar API error {status_code}: {payload}")


class EmailNotConfiguredError(Exception):
    """SMTP transport is missing host or sender address"""


class EmailDeliveryError(Exception):
    def __init__(self, message: str, recipient: Optional[str] = None):
        super().__init__(message)
        self.recipient = recipient
