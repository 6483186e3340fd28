"""Cooperative cancellation checkpoints."""

import threading
from typing import Optional

from ..errors import OperationCancelledError


def raise_if_cancelled(cancel: Optional[threading.Event], operation: str) -> None:
    """
    Raise OperationCancelledError if the caller has set the cancel event.

    Args:
        cancel: Event set by the caller to request cancellation (optional)
        operation: Name of the operation, used in the error message
    """
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"{operation} cancelled")
