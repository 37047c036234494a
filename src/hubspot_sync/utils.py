"""
Time and number helpers shared by the fetchers.

HubSpot returns record timestamps as ISO-8601 strings ("2024-03-01T10:00:00.000Z")
but some datetime properties as epoch-millisecond strings. Everything is
normalized to timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Datetime to integer epoch milliseconds."""
    return int(ensure_utc(value).timestamp() * 1000)


def from_epoch_ms(value: int | float) -> datetime:
    """Epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 string, an epoch-millisecond string/number or a datetime.

    Returns None for empty or unparseable input.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)

    text = str(value).strip()
    if text.isdigit():
        return from_epoch_ms(int(text))
    try:
        return ensure_utc(datetime.fromisoformat(text.replace('Z', '+00:00')))
    except ValueError:
        return None


def parse_int(value: Any, default: int = 0) -> int:
    """Parse a numeric property, falling back to default on failure."""
    if value is None:
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def to_iso(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return ensure_utc(value).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
