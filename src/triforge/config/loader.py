"""
Configuration file loading utilities.

This module handles the low-level loading and parsing of the project's
``triforge.toml`` and of the ``package.json`` manifests of the project root
and of every target.
"""

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from ..validation import ConfigurationError, ErrorSeverity, handle_config_error

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "triforge.toml"
PACKAGE_JSON_NAME = "package.json"


def load_toml_file(file_path: Path, description: str = "configuration file") -> Dict[str, Any]:
    """
    Load and parse a TOML file with error handling.

    Args:
        file_path: Path to the TOML file to load
        description: Human-readable description for error messages

    Returns:
        Parsed TOML data as a dictionary

    Raises:
        ConfigurationError: If the file doesn't exist or is malformed
    """
    logger.debug(f"Loading {description} from: {file_path}")

    if not file_path.exists():
        raise ConfigurationError(f"{description} not found: {file_path}")

    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        error = ConfigurationError(f"failed to parse {description} {file_path}: {e}")
        handle_config_error(
            error=error,
            context=f"parsing {description}",
            severity=ErrorSeverity.DEBUG,
            reraise=False,
            logger=logger
        )
        raise error from e


def find_config_file(start: Path) -> Path:
    """
    Find ``triforge.toml`` in ``start`` or the closest parent directory.

    Raises:
        ConfigurationError: If no configuration file exists up to the filesystem root
    """
    location = Path(start).resolve()
    for directory in (location, *location.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    raise ConfigurationError(f"Could not find {CONFIG_FILE_NAME} in {location} or any parent directory")


def load_project_config(config_path: Path) -> Dict[str, Any]:
    """
    Load the raw project configuration (triforge.toml).

    Args:
        config_path: Path to triforge.toml

    Returns:
        Parsed configuration data
    """
    return load_toml_file(config_path, "project configuration file")


def load_package_json(directory: Path, required: bool = True) -> Optional[Dict[str, Any]]:
    """
    Load the ``package.json`` manifest of a directory.

    Args:
        directory: Directory containing package.json
        required: Raise when the file is missing instead of returning None

    Returns:
        Parsed manifest, or None if missing and not required

    Raises:
        ConfigurationError: If the file is missing (and required) or malformed
    """
    file_path = Path(directory) / PACKAGE_JSON_NAME

    if not file_path.exists():
        if required:
            raise ConfigurationError(f"{PACKAGE_JSON_NAME} does not exist in {directory}")
        return None

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"failed to parse {file_path}, cause: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{file_path} must contain a JSON object")
    return data
