"""Utility constants and helpers for calshift.

Time unit constants represent durations in seconds.
"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

# Time unit constants (all values in seconds)
MINUTE = 60
HOUR = 3600
DAY = 86400

UTC_TIMEZONE = "UTC"


def to_instant(value: date | datetime, zone: ZoneInfo | None = None) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime.

    Dates are taken as midnight in ``zone`` (UTC when no zone is given).
    Naive datetimes are assumed to be in ``zone``.
    """
    tz = zone if zone is not None else timezone.utc
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min, tzinfo=tz)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)
