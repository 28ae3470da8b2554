"""
Environment file loading.

Env files are layered in a fixed order; values from later files override
earlier ones:

    .env, .env.local, then the mode files
    development: .env.dev, .env.dev.local, .env.development, .env.development.local
    otherwise:   .env.prod, .env.prod.local, .env.production, .env.production.local
"""

import logging
from pathlib import Path
from typing import Dict, List

from dotenv import dotenv_values

from ..validation import ConfigurationError

logger = logging.getLogger(__name__)


def env_file_names(mode: str) -> List[str]:
    """Return the env file names for a mode, lowest precedence first."""
    names = [".env", ".env.local"]
    if mode == "development":
        names += [".env.dev", ".env.dev.local", ".env.development", ".env.development.local"]
    else:
        names += [".env.prod", ".env.prod.local", ".env.production", ".env.production.local"]
    return names


def load_env_files(directory: Path, mode: str) -> Dict[str, str]:
    """
    Load and merge the env files found in ``directory``.

    Args:
        directory: Directory to look in (project root or a target root)
        mode: Running mode, selects the mode-specific files

    Returns:
        Merged variables; keys without a value are skipped

    Raises:
        ConfigurationError: If an existing env file cannot be read
    """
    env: Dict[str, str] = {}
    for name in env_file_names(mode):
        path = Path(directory) / name
        if not path.is_file():
            continue
        try:
            values = dotenv_values(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"failed to load env, cause: {e}") from e
        loaded = {key: value for key, value in values.items() if value is not None}
        env.update(loaded)
        logger.debug(f"Loaded {len(loaded)} variables from {path}")
    return env
