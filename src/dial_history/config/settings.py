"""
Application settings and configuration management.

Supports loading from:
1. YAML config files (config.yaml, or SOPS-encrypted config.enc.yaml)
2. Environment variables (fallback)
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from .constants import (
    DEFAULT_SQLITE_DB_PATH,
    DEFAULT_STATS_INTERVAL_SECONDS,
    SUPPORTED_BACKENDS,
)

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _safe_float(key: str, default: float) -> float:
    """Safely parse float from env var, using default on error."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _safe_bool(key: str, default: bool) -> bool:
    """Safely parse bool from env var."""
    return os.environ.get(key, str(default).lower()).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """Application settings for the dial history engine."""

    # Storage Backend Settings
    storage_backend: str = "sqlite"
    sqlite_db_path: str = DEFAULT_SQLITE_DB_PATH

    # Stats sampler
    stats_enabled: bool = True
    stats_interval_seconds: float = DEFAULT_STATS_INTERVAL_SECONDS

    # Logging
    log_level: str = "INFO"

    def validate(self) -> list[str]:
        """Validate settings values. Returns list of errors."""
        errors = []

        if self.storage_backend not in SUPPORTED_BACKENDS:
            errors.append(
                f"storage.backend must be one of {SUPPORTED_BACKENDS}, "
                f"got '{self.storage_backend}'"
            )
        if not self.sqlite_db_path:
            errors.append("storage.sqlite_db_path is required")
        if self.stats_interval_seconds <= 0:
            errors.append(
                f"monitoring.stats_interval_seconds must be > 0, "
                f"got {self.stats_interval_seconds}"
            )
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(
                f"logging.level must be one of {list(VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )

        return errors

    def to_dict(self) -> dict:
        """Convert to nested dictionary matching the config file layout."""
        return {
            "storage": {
                "backend": self.storage_backend,
                "sqlite_db_path": self.sqlite_db_path,
            },
            "monitoring": {
                "stats_enabled": self.stats_enabled,
                "stats_interval_seconds": self.stats_interval_seconds,
            },
            "logging": {"level": self.log_level},
        }

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Settings":
        """Create Settings from configuration dictionary (e.g., from YAML)."""
        storage = config.get("storage") or {}
        monitoring = config.get("monitoring") or {}
        log_config = config.get("logging") or {}

        return cls(
            storage_backend=storage.get("backend", "sqlite"),
            sqlite_db_path=storage.get("sqlite_db_path", DEFAULT_SQLITE_DB_PATH),
            stats_enabled=bool(monitoring.get("stats_enabled", True)),
            stats_interval_seconds=float(
                monitoring.get(
                    "stats_interval_seconds", DEFAULT_STATS_INTERVAL_SECONDS
                )
            ),
            log_level=str(log_config.get("level", "INFO")).upper(),
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables."""
        return cls(
            storage_backend=os.environ.get("DIAL_STORAGE_BACKEND", "sqlite").lower(),
            sqlite_db_path=os.environ.get(
                "DIAL_SQLITE_DB_PATH", DEFAULT_SQLITE_DB_PATH
            ),
            stats_enabled=_safe_bool("DIAL_STATS_ENABLED", True),
            stats_interval_seconds=_safe_float(
                "DIAL_STATS_INTERVAL_SECONDS", DEFAULT_STATS_INTERVAL_SECONDS
            ),
            log_level=os.environ.get("DIAL_LOG_LEVEL", "INFO").upper(),
        )


# Default config file path
DEFAULT_CONFIG_PATH = Path("config.yaml")


@lru_cache
def get_settings(config_path: Optional[str] = None) -> Settings:
    """
    Get cached settings instance.

    Loads from the YAML config file if available, otherwise from env vars.

    Args:
        config_path: Optional path to a YAML (or SOPS-encrypted YAML) config file

    Returns:
        Settings instance
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if path.exists():
        try:
            from .config_loader import load_config_file

            return Settings.from_dict(load_config_file(path))
        except (OSError, RuntimeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Falling back to environment variables")

    return Settings.from_env()


def clear_settings_cache() -> None:
    """Clear the cached settings (useful for testing)."""
    get_settings.cache_clear()
