from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return a UTC tz-aware datetime; SQLite hands back naive values that were written as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat().replace('+00:00', 'Z') if dt else None


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO 8601 string (trailing Z allowed). Raises ValueError on garbage."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str):
        raise ValueError(f'Invalid datetime {value!r}')
    return as_utc(datetime.fromisoformat(value.strip().replace('Z', '+00:00')))

__all__ = ['EPOCH', 'utcnow', 'as_utc', 'iso', 'parse_datetime']
