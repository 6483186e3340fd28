"""
Storage backend factory.

Builds the configured backend, filling missing options from settings.
"""

import logging
from pathlib import Path
from typing import Optional

from .base import StorageBackend, StorageError

logger = logging.getLogger(__name__)


def _sqlite_backend_class() -> type[StorageBackend]:
    from .sqlite_backend import SQLiteBackend

    return SQLiteBackend


# Backend type -> loader returning the implementing class (imported lazily)
_BACKEND_LOADERS = {
    "sqlite": _sqlite_backend_class,
}


def get_backend(
    backend_type: Optional[str] = None,
    **kwargs,
) -> StorageBackend:
    """
    Create a storage backend.

    Args:
        backend_type: 'sqlite', or None to use ``storage.backend`` from settings
        **kwargs: Passed to the backend constructor (SQLite: db_path,
            timeout, clock). ``db_path`` defaults to
            ``storage.sqlite_db_path``.

    Returns:
        Uninitialized StorageBackend; call initialize() before use.

    Raises:
        StorageError: If the backend type is unknown or construction fails.
    """
    settings = None
    if backend_type is None or "db_path" not in kwargs:
        from ..config.settings import get_settings

        settings = get_settings()

    backend_type = (backend_type or settings.storage_backend).lower()
    loader = _BACKEND_LOADERS.get(backend_type)
    if loader is None:
        raise StorageError(
            f"Unknown storage backend: '{backend_type}'. "
            f"Available backends: {', '.join(sorted(_BACKEND_LOADERS))}"
        )

    if "db_path" not in kwargs:
        kwargs["db_path"] = Path(settings.sqlite_db_path)

    try:
        backend = loader()(**kwargs)
    except (OSError, TypeError, ValueError) as e:
        raise StorageError(f"Failed to create {backend_type} backend: {e}") from e

    logger.info(f"Created {backend_type} storage backend")
    return backend
