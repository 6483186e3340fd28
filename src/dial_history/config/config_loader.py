"""
YAML configuration loader.

Supports plain YAML files and SOPS-encrypted YAML files.
"""

import logging
import subprocess
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def is_encrypted_config(file_path: Path) -> bool:
    """Return True if the file name marks it as SOPS-encrypted (*.enc.yaml)."""
    return file_path.name.endswith((".enc.yaml", ".enc.yml"))


def decrypt_sops_file(file_path: Path) -> dict[str, Any]:
    """
    Decrypt a SOPS-encrypted file and return parsed YAML.

    Args:
        file_path: Path to the encrypted file

    Returns:
        Decrypted configuration as dictionary

    Raises:
        FileNotFoundError: If file doesn't exist
        RuntimeError: If SOPS decryption fails
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Encrypted config file not found: {file_path}")

    try:
        result = subprocess.run(
            ["sops", "-d", str(file_path)],
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"SOPS decryption failed: {e.stderr}") from e
    except FileNotFoundError:
        raise RuntimeError(
            "SOPS not installed. Install with: brew install sops (macOS) "
            "or download from https://github.com/getsops/sops/releases"
        )
    return yaml.safe_load(result.stdout) or {}


def load_config_file(file_path: Path) -> dict[str, Any]:
    """
    Load a configuration mapping from a YAML file.

    Encrypted files are decrypted through SOPS first.

    Args:
        file_path: Path to the configuration file

    Returns:
        Configuration dictionary (empty if the file is empty)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file is not valid YAML or not a mapping
    """
    if is_encrypted_config(file_path):
        config = decrypt_sops_file(file_path)
    else:
        if not file_path.exists():
            raise FileNotFoundError(f"Config file not found: {file_path}")
        with file_path.open("r", encoding="utf-8") as f:
            try:
                config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {file_path}: {e}") from e

    if not isinstance(config, dict):
        raise ValueError(
            f"Config file {file_path} must contain a mapping, "
            f"got {type(config).__name__}"
        )

    logger.debug(f"Loaded configuration from {file_path}")
    return config


def check_sops_installed() -> bool:
    """Check if SOPS is installed and accessible."""
    try:
        subprocess.run(
            ["sops", "--version"],
            capture_output=True,
            check=True,
        )
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
