"""
Storage abstraction layer for dial value history.

Provides a unified interface for dials, memberships and the
minute-resolution dial value history.

Usage:
    from dial_history.storage import get_backend

    # Get backend from configuration
    backend = get_backend()

    # Or explicitly specify backend
    backend = get_backend('sqlite', db_path='data/dial-history.db')

    # Use as context manager
    with get_backend() as backend:
        backend.initialize()
        with backend.transaction() as tx:
            backend.upsert_dial_value(1, tx.now, 5)
"""

from .base import (
    QueryError,
    SchemaError,
    StorageBackend,
    StorageConnectionError,
    StorageError,
    Transaction,
    ValueHistoryStore,
)
from .factory import get_backend

__all__ = [
    # Base classes and exceptions
    "ValueHistoryStore",
    "StorageBackend",
    "Transaction",
    "StorageError",
    "StorageConnectionError",
    "QueryError",
    "SchemaError",
    # Factory
    "get_backend",
]
