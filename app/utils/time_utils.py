# app/utils/time_utils.py
"""
Time helpers shared by the scheduling services.

Instants are stored as naive UTC datetimes. Rule and template times are
wall-clock times in the business timezone and are resolved through pytz.
"""
from datetime import date, datetime, time, timezone
from typing import Optional
import logging

import pytz

from app.config.settings import get_settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current instant as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Normalise an instant to naive UTC. Naive input is taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    return to_utc_naive(now) if now is not None else utcnow()


def get_tz(tz_name: Optional[str]) -> pytz.BaseTzInfo:
    """Timezone for a business, falling back to the configured default"""
    name = tz_name or get_settings().DEFAULT_TIMEZONE
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Invalid timezone '{name}', using UTC")
        return pytz.UTC


def localize(target_date: date, wall_time: time, tz: pytz.BaseTzInfo) -> datetime:
    """Aware datetime for a wall-clock time on a date in tz"""
    return tz.localize(datetime.combine(target_date, wall_time))


def to_local(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """Convert a naive-UTC (or aware) instant to an aware datetime in tz"""
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value.astimezone(tz)


def local_today(tz: pytz.BaseTzInfo, now: Optional[datetime] = None) -> date:
    return to_local(resolve_now(now), tz).date()


def sunday_weekday(target_date: date) -> int:
    """Weekday number with 0=Sunday ... 6=Saturday"""
    return (target_date.weekday() + 1) % 7
