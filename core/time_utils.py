from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TypeVar
from zoneinfo import ZoneInfo

import dateparser

DateLike = TypeVar("DateLike", date, datetime)


def get_timezone(tz_name: str) -> ZoneInfo:
    """Return a ZoneInfo instance, raising a clear error when invalid."""
    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # pragma: no cover - ZoneInfo raises various subclassed errors
        raise ValueError(f"Invalid timezone '{tz_name}': {exc}") from exc


def ensure_timezone(dt: datetime, tz: ZoneInfo) -> datetime:
    """Ensure a datetime is timezone-aware and localized to the target zone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_human_datetime(value: str | datetime, tz: ZoneInfo) -> datetime:
    """Parse ISO or natural language datetime strings relative to a timezone."""
    if isinstance(value, datetime):
        return ensure_timezone(value, tz)

    try:
        parsed = datetime.fromisoformat(value)
        return ensure_timezone(parsed, tz)
    except ValueError:
        pass

    parsed = dateparser.parse(value, settings={"TIMEZONE": str(tz), "RETURN_AS_TIMEZONE_AWARE": True})
    if not parsed:
        raise ValueError(f"Unable to parse datetime value '{value}'")
    return parsed.astimezone(tz)


def as_date(value: date | datetime) -> date:
    """Drop the time-of-day part, if any."""
    if isinstance(value, datetime):
        return value.date()
    return value


def weekday_index(value: date | datetime) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7


def shift_days(value: DateLike, days: int) -> DateLike:
    """Move by whole calendar days, keeping time-of-day and tzinfo."""
    return value + timedelta(days=days)


def to_datetime(value: date | datetime) -> datetime:
    """Promote a plain date to midnight of the same day."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


def is_after(candidate: date | datetime, limit: date | datetime) -> bool:
    """Compare two date-likes, falling back to date parts on mixed inputs."""
    if isinstance(candidate, datetime) and isinstance(limit, datetime):
        if (candidate.tzinfo is None) == (limit.tzinfo is None):
            return candidate > limit
    return as_date(candidate) > as_date(limit)
