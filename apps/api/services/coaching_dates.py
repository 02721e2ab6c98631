"""
Member-local calendar helpers.

Every "today" in the coaching engine is the member's local date, not the
server's. Timezones come from the member row (see AuthContext.timezone).
"""
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from core.config import settings

logger = logging.getLogger(__name__)


def resolve_zone(tz_name: Optional[str]) -> ZoneInfo:
    """ZoneInfo for an IANA name; unknown names fall back to the configured default."""
    name = tz_name or settings.COACHING_DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {settings.COACHING_DEFAULT_TIMEZONE}")
        return ZoneInfo(settings.COACHING_DEFAULT_TIMEZONE)


def local_today(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(resolve_zone(tz_name)).date()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def daterange(start: date, end: date) -> Iterator[date]:
    """Inclusive on both ends."""
    for offset in range((end - start).days + 1):
        yield start + timedelta(days=offset)
