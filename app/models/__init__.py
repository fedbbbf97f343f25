# app/models/__init__.py
from .base import Base
from .business import Business
from .service import Service
from .booking import Booking, BookingStatus, CalendarSyncStatus
from .calendar_integration import CalendarIntegration, SystemIntegration

__all__ = [
    "Base",
    "Business",
    "Service",
    "Booking",
    "BookingStatus",
    "CalendarSyncStatus",
    "CalendarIntegration",
    "SystemIntegration",
]
