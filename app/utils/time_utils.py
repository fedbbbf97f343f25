# app/utils/time_utils.py
"""Timezone helpers shared by the booking workflow and its notifications"""
import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config.settings import get_settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC
    (some drivers drop tzinfo on timezone-aware columns)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: Optional[str]) -> str:
    """Return a valid IANA timezone name, falling back to DEFAULT_TIMEZONE"""
    default = get_settings().DEFAULT_TIMEZONE
    if not name:
        return default
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, falling back to {default}")
        return default
    return name


def localize(value: datetime, tz_name: str) -> datetime:
    """Attach tz_name to a naive datetime and return the absolute instant in UTC"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name))
    return value.astimezone(timezone.utc)


def format_booking_window(start: datetime, duration_minutes: int, tz_name: str) -> str:
    """e.g. 'Monday, January 5, 2026 from 10:00 AM to 10:30 AM'"""
    zone = ZoneInfo(tz_name)
    local_start = as_utc(start).astimezone(zone)
    local_end = local_start + timedelta(minutes=duration_minutes)
    return (
        f"{local_start.strftime('%A, %B')} {local_start.day}, {local_start.year} "
        f"from {_clock(local_start)} to {_clock(local_end)}"
    )


def _clock(value: datetime) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"


def add_months(value: datetime, months: int) -> datetime:
    """Same day-of-month `months` later (or earlier), clamped to the month's last day"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
