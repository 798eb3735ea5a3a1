"""Business-time helpers."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from forno.core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Current time in the store's timezone."""
    return datetime.now(ZoneInfo(settings.timezone))


def weekday_index(moment: datetime) -> int:
    """Day of week with 0 = Sunday .. 6 = Saturday."""
    return moment.isoweekday() % 7
