"""
Configuration management with a module-level cache.

The project configuration is loaded once per process. Tests and the CLI can
point the manager at a different file, or clear the cache to force a reload.
"""

import logging
from pathlib import Path
from typing import Optional

from ..models.config import ProjectConfig
from ..validation import ErrorSeverity, handle_config_error
from .loader import CONFIG_FILE_NAME, find_config_file, load_project_config
from .validators import validate_project_config

logger = logging.getLogger(__name__)

# --- Cached configuration ---

_CONFIG: Optional[ProjectConfig] = None

# None means: search for triforge.toml from the current directory upwards.
_CONFIG_FILE_PATH: Optional[Path] = None

_MODE_OVERRIDE: Optional[str] = None


def set_config_path(config_path: Optional[Path]) -> None:
    """
    Set a custom configuration file path and drop the cached configuration.

    Args:
        config_path: Path to triforge.toml, or None to restore discovery
    """
    global _CONFIG_FILE_PATH, _CONFIG
    _CONFIG_FILE_PATH = Path(config_path) if config_path else None
    _CONFIG = None
    logger.debug(f"Configuration path set to: {config_path}")


def set_mode_override(mode: Optional[str]) -> None:
    """Force the running mode regardless of what triforge.toml says."""
    global _MODE_OVERRIDE, _CONFIG
    _MODE_OVERRIDE = mode
    _CONFIG = None


def clear_config_cache() -> None:
    """Clear the cached configuration, forcing a reload on next access."""
    global _CONFIG
    _CONFIG = None
    logger.debug("Configuration cache cleared")


def _load_config(config_path: Path, mode_override: Optional[str]) -> ProjectConfig:
    """
    Load and validate the project configuration.

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    try:
        raw = load_project_config(config_path)
        config = validate_project_config(raw, root=config_path.parent, mode_override=mode_override)
        logger.debug(f"Loaded {config_path} in {config.mode} mode")
        return config
    except Exception as e:
        handle_config_error(
            error=e,
            context=f"loading {config_path}",
            severity=ErrorSeverity.DEBUG,
            reraise=True,
            logger=logger
        )
        raise


def get_config() -> ProjectConfig:
    """
    Get the project configuration, loading it on first use.

    Returns:
        The cached ProjectConfig instance

    Raises:
        ConfigurationError: If the configuration cannot be loaded
    """
    global _CONFIG
    if _CONFIG is None:
        config_path = _CONFIG_FILE_PATH or find_config_file(Path.cwd())
        _CONFIG = _load_config(config_path, _MODE_OVERRIDE)
    return _CONFIG


def is_config_loaded() -> bool:
    return _CONFIG is not None


def get_config_info() -> dict:
    """
    Get information about the current configuration state.
    """
    return {
        "config_loaded": is_config_loaded(),
        "config_path": str(_CONFIG_FILE_PATH or CONFIG_FILE_NAME),
        "mode": _CONFIG.mode if _CONFIG else None,
        "bridges_count": len(_CONFIG.bridges) if _CONFIG else 0,
        "uis_count": len(_CONFIG.uis) if _CONFIG else 0,
    }
