"""Wall-clock helpers.

Trip and point timestamps are stored as naive datetimes in the configured
zone (``settings.TIMEZONE``). Calendar-day checks compare ``.date()`` of those
naive values, so a trip "crosses midnight" in local time, not in UTC.
"""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from .config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def to_naive_local(dt: datetime) -> datetime:
    """Convert timezone-aware input into a naive wall-clock datetime."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(local_tz()).replace(tzinfo=None)


def epoch_seconds(dt: datetime) -> float:
    """Unix epoch seconds for a naive local datetime."""
    return dt.replace(tzinfo=local_tz()).timestamp()


def at_time(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


def same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()
