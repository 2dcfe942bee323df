"""
Standardized Date/Time Handling Utilities

CRITICAL RULES:
- All stored instants are timezone-aware UTC (use ensure_utc())
- Streak days are calendar days in the user's timezone (use local_date())
- Never mix naive and aware datetimes
"""

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")

# Default timezone if user hasn't set one
DEFAULT_TIMEZONE = "UTC"


def get_timezone(tz_name: str | None) -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to the default

    Args:
        tz_name: e.g. "Europe/Stockholm"

    Returns:
        ZoneInfo object
    """
    if not tz_name:
        return ZoneInfo(DEFAULT_TIMEZONE)
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.error(f"Invalid timezone '{tz_name}': {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC

    Raises:
        ValueError: dt is naive
    """
    if dt.tzinfo is None:
        raise ValueError("Naive datetime cannot be converted to UTC")
    return dt.astimezone(UTC)


def local_date(dt: datetime, tz: ZoneInfo) -> date:
    """Calendar date of an instant in the given timezone"""
    return ensure_utc(dt).astimezone(tz).date()


def local_wall_time(day: date, tz: ZoneInfo, hours: int = 0) -> datetime:
    """
    Wall-clock instant `hours` after local midnight of `day`, in UTC

    Wall-clock arithmetic keeps "midnight + 4h" at 04:00 local time even on
    DST transition days.
    """
    local = datetime.combine(day, time(hour=hours), tzinfo=tz)
    return local.astimezone(UTC)


def end_of_local_day(day: date, tz: ZoneInfo) -> datetime:
    """Last representable instant of a local calendar day, in UTC"""
    return local_wall_time(day + timedelta(days=1), tz) - timedelta(microseconds=1)
