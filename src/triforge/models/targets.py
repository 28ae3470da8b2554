"""
Target descriptors.

A target is one independently bundled unit of the application. The three
kinds share the same record and the same derived-path logic; behavior that
differs per kind is expressed by functions parameterized by ``kind``.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .config import PackRules

# Directory under the project root where production artifacts are assembled.
APP_DIR_NAME = "app"

# Output directory name used next to a target's sources outside production.
DIST_DIR_NAME = "dist"

# File name of the Host bundle inside its output directory.
HOST_BUNDLE_NAME = "index.cjs"

# The Host is a singleton and carries this implicit id.
HOST_ID = "host"

EntrySpec = Union[Path, Mapping[str, Path]]


class TargetKind(str, Enum):
    """The three kinds of buildable targets."""

    HOST = "host"
    BRIDGE = "bridge"
    UI = "ui"


def output_path(
    mode: str,
    kind: TargetKind,
    target_id: str,
    project_root: Path,
    source_root: Path,
) -> Path:
    """
    Compute where a target's artifacts are written.

    Outside production the output lives in a ``dist`` directory next to the
    target's sources. In production every target is namespaced under the
    assembled application root, ``<root>/app/<kind>[/<id>]``.

    This function has no side effects; identical arguments always give
    identical paths.
    """
    if mode == "production":
        base = Path(project_root) / APP_DIR_NAME / kind.value
        if kind is TargetKind.HOST:
            return base
        return base / target_id
    return Path(source_root) / DIST_DIR_NAME


@dataclass(frozen=True)
class TargetDescriptor:
    """
    Immutable description of one resolved target.
    """

    kind: TargetKind
    id: str
    source_root: Path
    entry: EntrySpec = field(hash=False)
    output_path: Path
    # Parsed package.json of the target.
    manifest: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    pack: Optional[PackRules] = field(default=None, hash=False, compare=False)

    @property
    def label(self) -> str:
        """Short human readable name, e.g. ``host`` or ``bridge:primary``."""
        if self.kind is TargetKind.HOST:
            return self.kind.value
        return f"{self.kind.value}:{self.id}"

    @property
    def bundle_file(self) -> Path:
        """The single-file bundle the Host process is started from."""
        return self.output_path / HOST_BUNDLE_NAME

    @property
    def runtime_dependencies(self) -> Dict[str, str]:
        return dict(self.manifest.get("dependencies") or {})

    @property
    def dev_dependencies(self) -> Dict[str, str]:
        return dict(self.manifest.get("devDependencies") or {})
