"""
Domain exceptions for dial value tracking and reporting.

Storage failures live in ``dial_history.storage`` (StorageError and
subclasses); the exceptions here describe domain conditions.
"""

from datetime import datetime, timedelta
from typing import Optional


class DialError(Exception):
    """
    Base exception for all dial domain errors.

    All other domain exceptions inherit from this class,
    allowing for broad exception catching when needed.
    """

    pass


class NotFoundError(DialError):
    """
    Raised when a dial or membership does not exist.

    Attributes:
        dial_id: The dial that was looked up (optional)
        message: Detailed error message
    """

    def __init__(self, message: str, dial_id: Optional[int] = None):
        self.dial_id = dial_id
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.dial_id is not None:
            return f"{self.message} (dial_id={self.dial_id})"
        return self.message


class UnauthorizedError(DialError):
    """Raised when the acting user may not perform an operation."""

    pass


class ConflictError(DialError):
    """Raised when a write collides with an existing unique record."""

    pass


class ValidationError(DialError):
    """
    Raised when a dial field fails validation.

    Attributes:
        field: The field name that failed validation (optional)
        message: Detailed error message
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.message = message
        super().__init__(f"{message} (field='{field}')" if field else message)


class InvalidWindowError(DialError):
    """
    Raised when a report window or interval is unusable.

    Rejected before any storage access: the interval must be positive
    and end must be after start.

    Attributes:
        start: Requested window start
        end: Requested window end
        interval: Requested slot interval
    """

    def __init__(
        self,
        message: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        interval: Optional[timedelta] = None,
    ):
        self.start = start
        self.end = end
        self.interval = interval
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = []
        if self.start is not None:
            parts.append(f"start={self.start.isoformat()}")
        if self.end is not None:
            parts.append(f"end={self.end.isoformat()}")
        if self.interval is not None:
            parts.append(f"interval={self.interval}")
        if parts:
            return f"{self.message} ({', '.join(parts)})"
        return self.message


class ReportError(DialError):
    """
    Raised when a report cannot be built because one dial failed.

    No partial report is returned; the failing dial is identified so
    operators can isolate corrupt history.

    Attributes:
        dial_id: The dial whose history could not be reconstructed
        cause: The underlying exception
    """

    def __init__(self, dial_id: int, cause: Exception):
        self.dial_id = dial_id
        self.cause = cause
        super().__init__(f"dial values between: id={dial_id} err={cause}")


class OperationCancelledError(DialError):
    """Raised when the caller cancels an in-flight operation."""

    pass
