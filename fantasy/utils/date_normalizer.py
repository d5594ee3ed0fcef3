"""
Date normalization for values coming from the stats providers and the store.

The providers are inconsistent about date formatting, so every other
component works only on the canonical value returned here: a timezone-aware
datetime at midnight UTC.
"""

import re
from datetime import date, datetime
from typing import Any

import pytz

from fantasy.constants import DateConstants
from fantasy.utils.logger import setup_logger

logger = setup_logger(__name__)

_MONTH_NAME_PATTERN = re.compile(r'^([A-Za-z]{3,9})\.?\s+(\d{1,2}),?\s+(\d{4})$')
_SLASH_PATTERN = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')
_COMPACT_PATTERN = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
_ISO_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$')

_MONTHS = {
    name: index
    for index, names in enumerate(
        [('jan', 'january'), ('feb', 'february'), ('mar', 'march'), ('apr', 'april'),
         ('may',), ('jun', 'june'), ('jul', 'july'), ('aug', 'august'),
         ('sep', 'sept', 'september'), ('oct', 'october'), ('nov', 'november'),
         ('dec', 'december')],
        start=1,
    )
    for name in names
}


def parse_date_string(value: str) -> date:
    """
    Parse a provider date string into a calendar date.

    Supported formats:
    - "YYYY-MM-DD", optionally followed by a time part ("2025-10-22T00:00:00")
    - "MM/DD/YYYY"
    - "Mon DD, YYYY" in any case, with short or full month names ("OCT 22, 2025")
    - "YYYYMMDD"

    Raises:
        ValueError: If the string matches none of the formats or is not a real date
    """
    text = value.strip()

    match = _MONTH_NAME_PATTERN.match(text)
    if match:
        month = _MONTHS.get(match.group(1).lower())
        if month is None:
            raise ValueError(f"Unknown month name in date: {value!r}")
        return date(int(match.group(3)), month, int(match.group(2)))

    match = _SLASH_PATTERN.match(text)
    if match:
        return date(int(match.group(3)), int(match.group(1)), int(match.group(2)))

    match = _COMPACT_PATTERN.match(text)
    if match:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _ISO_PATTERN.match(text)
    if match:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    raise ValueError(f"Unrecognized date format: {value!r}")


def _to_calendar_date(value: Any) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(pytz.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_date_string(value)
    raise ValueError(f"Unsupported date value of type {type(value).__name__}")


def normalize_date(value: Any) -> datetime:
    """
    Normalize a date value to midnight UTC for equality and ordering comparisons.

    Never raises: unparsable input yields DateConstants.EPOCH_SENTINEL and a
    warning, so one bad record cannot abort a ranking run.
    """
    try:
        day = _to_calendar_date(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid date detected: {value!r} ({e})")
        return DateConstants.EPOCH_SENTINEL

    return datetime(day.year, day.month, day.day, tzinfo=pytz.utc)


def is_sentinel(value: datetime) -> bool:
    """Whether a normalized date is the placeholder for an unparsable input."""
    return value == DateConstants.EPOCH_SENTINEL
