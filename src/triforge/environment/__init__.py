"""
Environment composition, env file loading and generated helper modules.
"""

from .composer import EnvironmentSet, compose, env_id, normalize_path, to_defines
from .dotenv_files import env_file_names, load_env_files
from .helpers import (
    PATHS_HELPER,
    UTILS_HELPER,
    render_paths_helper,
    render_utils_helper,
    write_helper_modules,
)

__all__ = [
    "EnvironmentSet",
    "compose",
    "env_id",
    "normalize_path",
    "to_defines",
    "env_file_names",
    "load_env_files",
    "PATHS_HELPER",
    "UTILS_HELPER",
    "render_paths_helper",
    "render_utils_helper",
    "write_helper_modules",
]
