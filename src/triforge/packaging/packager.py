"""
Packager invocation.

Assembles the packager configuration for the built application directory
and runs the packager command line on it.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping

from ..validation.exceptions import PackagingError

logger = logging.getLogger(__name__)

BUILD_RESOURCES_DIR_NAME = "buildResources"
BUILD_OUTPUT_DIR_NAME = "buildOutput"
GENERATED_CONFIG_NAME = "builder.config.json"


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``; override wins."""
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def builder_config(
    project_root: Path, user_config: Mapping[str, Any], resources: List[str]
) -> Dict[str, Any]:
    """
    Compute the packager configuration.

    The project's own ``builder`` settings are kept; directories, extra files
    and publishing are always set by triforge.
    """
    root = Path(project_root)
    return deep_merge(user_config, {
        "directories": {
            "buildResources": str(root / BUILD_RESOURCES_DIR_NAME),
            "output": str(root / BUILD_OUTPUT_DIR_NAME / "${os} ${arch}"),
        },
        "extraFiles": [{"from": resource, "to": resource} for resource in resources],
        "publish": None,
    })


class Packager:
    """
    Runs the packager command line on the assembled ``app`` directory.
    """

    def __init__(self, command: List[str], project_root: Path, work_dir: Path):
        self.command = list(command)
        self.project_root = Path(project_root)
        self.work_dir = Path(work_dir)

    def write_config(self, config: Mapping[str, Any]) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        path = self.work_dir / GENERATED_CONFIG_NAME
        path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        return path

    def arguments(self, config_path: Path) -> List[str]:
        return [
            "--projectDir", str(self.project_root),
            "--config", str(config_path),
            "--publish", "never",
        ]

    async def run(self, config: Mapping[str, Any]) -> None:
        """
        Package the application.

        Raises:
            PackagingError: If the packager cannot be started or fails
        """
        config_path = self.write_config(config)
        command = self.command + self.arguments(config_path)
        logger.info(f"Packing with: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.project_root),
                env=dict(os.environ),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise PackagingError(f"failed to start the packager: {e}") from e

        tail: List[str] = []
        while process.stdout is not None:
            raw = await process.stdout.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                logger.info(line)
                tail = (tail + [line])[-10:]
        code = await process.wait()
        if code != 0:
            raise PackagingError(
                f"Failed to pack production package (exit code {code})",
                detail="\n".join(tail) or None,
            )
        logger.info("Packaging finished")
