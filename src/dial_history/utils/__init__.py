"""Utility functions for dial history."""

from .cancellation import raise_if_cancelled
from .logging_utils import setup_logging
from .time_utils import ensure_utc, parse_interval, parse_timestamp, truncate

__all__ = [
    # Time utilities
    "ensure_utc",
    "truncate",
    "parse_timestamp",
    "parse_interval",
    # Cancellation
    "raise_if_cancelled",
    # Logging
    "setup_logging",
]
