"""
Business-time helpers.

Every timestamp this service stores is a "YYYY-MM-DD HH:MM:SS" string in the
configured business time zone (default Asia/Manila), so lexicographic range
filters on date_created behave like chronological ones.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from shared.config import get_settings

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

# Tried in order when combining a booking's date and time fields
BOOKING_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)


def get_business_timezone() -> ZoneInfo:
    """Return the configured business time zone."""
    return ZoneInfo(get_settings().TIMEZONE)


def now_business() -> datetime:
    """Current time in the business time zone."""
    return datetime.now(get_business_timezone())


def format_timestamp(dt: datetime | None = None) -> str:
    """
    Format a datetime as a stored timestamp string.

    Args:
        dt: Datetime to format (default: now). Aware datetimes are converted
            to the business time zone first.

    Returns:
        "YYYY-MM-DD HH:MM:SS"
    """
    if dt is None:
        dt = now_business()
    elif dt.tzinfo is not None:
        dt = dt.astimezone(get_business_timezone())
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_booking_datetime(date_str: str, time_str: str, timezone: ZoneInfo | None = None) -> datetime:
    """
    Combine a booking's date and time into an aware datetime.

    Args:
        date_str: "YYYY-MM-DD"
        time_str: "HH:MM" or "HH:MM:SS"
        timezone: Zone to localize into (default: business time zone)

    Returns:
        datetime localized to the zone

    Raises:
        ValueError: If no supported format matches

    Examples:
        >>> parse_booking_datetime("2025-03-10", "14:30")
        datetime(2025, 3, 10, 14, 30, tzinfo=ZoneInfo('Asia/Manila'))
    """
    tz = timezone or get_business_timezone()
    date_str = (date_str or "").strip()
    time_str = (time_str or "").strip()

    candidates = [f"{date_str} {time_str}", f"{date_str}T{time_str}"]
    for fmt in BOOKING_DATETIME_FORMATS:
        for candidate in candidates:
            try:
                return datetime.strptime(candidate, fmt).replace(tzinfo=tz)
            except ValueError:
                continue

    raise ValueError(f"Invalid date/time: {date_str!r} {time_str!r}")


def next_day(date_str: str) -> str:
    """
    Return the day after a "YYYY-MM-DD" date (used as an exclusive upper bound).

    Raises:
        ValueError: If date_str does not start with a valid date
    """
    day = datetime.strptime(date_str.strip()[:10], DATE_FORMAT)
    return (day + timedelta(days=1)).strftime(DATE_FORMAT)
