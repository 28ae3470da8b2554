"""
Configuration management for the triforge package.

This module provides a clean interface for loading, validating, and accessing
the project configuration (triforge.toml) and the package manifests.
"""

from .loader import (
    CONFIG_FILE_NAME,
    PACKAGE_JSON_NAME,
    find_config_file,
    load_package_json,
    load_project_config,
    load_toml_file,
)
from .manager import (
    clear_config_cache,
    get_config,
    get_config_info,
    is_config_loaded,
    set_config_path,
    set_mode_override,
)
from .validators import (
    validate_pack_rules,
    validate_project_config,
    validate_target_config,
)

__all__ = [
    # Main interface
    "get_config",
    "set_config_path",
    "set_mode_override",
    "clear_config_cache",
    "is_config_loaded",
    "get_config_info",
    # Loading
    "CONFIG_FILE_NAME",
    "PACKAGE_JSON_NAME",
    "find_config_file",
    "load_toml_file",
    "load_project_config",
    "load_package_json",
    # Validation
    "validate_project_config",
    "validate_target_config",
    "validate_pack_rules",
]
