"""
Timestamp helpers.

All timestamps are normalized to timezone-aware UTC before comparison or
slot arithmetic. Naive datetimes are interpreted as UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Union

from dateutil import parser as date_parser

# Reference point for truncation: 0001-01-01T00:00:00Z
_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Return value as a timezone-aware UTC datetime.

    Args:
        value: Naive (assumed UTC) or aware datetime

    Returns:
        Equivalent aware datetime in UTC
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate(value: datetime, interval: timedelta) -> datetime:
    """
    Round a timestamp down to a multiple of interval.

    Multiples are counted from 0001-01-01T00:00:00Z, so any interval that
    evenly divides a day aligns to wall-clock boundaries in UTC.

    Args:
        value: Timestamp to truncate
        interval: Positive bucket size

    Returns:
        Truncated UTC timestamp. A non-positive interval returns the
        timestamp unchanged (normalized to UTC).

    Examples:
        >>> truncate(datetime(2024, 1, 1, 12, 0, 59), timedelta(minutes=1))
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    value = ensure_utc(value)
    if interval <= timedelta(0):
        return value
    return value - (value - _ZERO_TIME) % interval


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO8601 (or similar) timestamp into aware UTC.

    Args:
        value: Timestamp string or datetime

    Returns:
        Aware UTC datetime

    Raises:
        ValueError: If the string cannot be parsed
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(date_parser.parse(value))
    except (date_parser.ParserError, OverflowError) as e:
        raise ValueError(f"Invalid timestamp: {value!r}") from e


def parse_interval(value: str) -> timedelta:
    """
    Parse a compact duration such as ``30s``, ``5m``, ``1h`` or ``1d``.

    Bare integers are treated as minutes.

    Raises:
        ValueError: If the string is not a recognised duration
    """
    units = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}
    text = value.strip().lower()
    if not text:
        raise ValueError("Empty interval")

    suffix = text[-1]
    number = text[:-1] if suffix in units else text
    unit = units.get(suffix, "minutes")
    try:
        amount = int(number)
    except ValueError:
        raise ValueError(f"Invalid interval: {value!r}") from None
    return timedelta(**{unit: amount})
