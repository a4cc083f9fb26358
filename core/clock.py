"""
Time helpers shared by the trial, quota and review services.

All persisted timestamps are UTC. Some drivers (SQLite) hand back naive
datetimes, so comparisons go through ``ensure_aware`` first.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from core.config import settings

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def day_bounds(now: datetime, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Return the UTC start and end of the quota day containing ``now``.

    The day is evaluated in ``tz_name`` (defaults to ``settings.quota_timezone``)
    and spans 00:00:00 to 23:59:59.999999 local time.
    """
    tz = ZoneInfo(tz_name or settings.quota_timezone)
    local_now = ensure_aware(now).astimezone(tz)
    local_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    local_end = local_start + timedelta(days=1) - timedelta(microseconds=1)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency for the time source used by services."""
    return utcnow
