"""Calendar-day helpers that respect a user's timezone."""

from datetime import date, datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import settings

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return the ZoneInfo for ``name``, falling back to the configured default.

    Unknown names fall back too, so a bad value stored on a user never
    breaks balance bookkeeping.
    """
    try:
        return ZoneInfo(name or settings.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.DEFAULT_TIMEZONE)


def local_today(tz_name: str | None, clock: Clock | None = None) -> date:
    """Today's date in the given timezone."""
    now = (clock or utc_now)()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(resolve_timezone(tz_name)).date()


def local_yesterday(tz_name: str | None, clock: Clock | None = None) -> date:
    return local_today(tz_name, clock) - timedelta(days=1)
