"""Configuration module."""

from .config_loader import check_sops_installed, decrypt_sops_file, load_config_file
from .constants import (
    SNAPSHOT_RESOLUTION,
    SUPPORTED_BACKENDS,
)
from .settings import Settings, clear_settings_cache, get_settings

__all__ = [
    # History resolution
    "SNAPSHOT_RESOLUTION",
    "SUPPORTED_BACKENDS",
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Config loading
    "load_config_file",
    "decrypt_sops_file",
    "check_sops_installed",
]
