from datetime import date, datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Any) -> Optional[datetime]:
    """
    Coerce a timestamp to an aware UTC datetime.

    Naive datetimes are treated as UTC (the store writes UTC without tzinfo),
    plain dates become midnight UTC and ISO strings are parsed. None passes
    through.

    Raises:
        ValueError: If a string is not an ISO 8601 timestamp
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    elif not isinstance(value, datetime) and isinstance(value, date):
        value = datetime(value.year, value.month, value.day)
    if not isinstance(value, datetime):
        raise ValueError(f"Unsupported timestamp value of type {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """Strip tzinfo after converting to UTC, for storage in naive DateTime columns."""
    return ensure_utc(value).replace(tzinfo=None)
