"""
Configuration data models.

This module contains the validated, typed form of ``triforge.toml``: the
project-wide settings and the per-target definitions for the Host, Bridge
and UI targets.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

# The running modes understood by the orchestrator.
MODES = ("development", "preview", "production")

# How Host rebuilds interact with the Host process restart.
RESTART_POLICIES = ("manual", "auto")

# A dependency merge rule: merge everything, nothing, or filter by glob patterns.
MergeRule = Union[bool, Dict[str, List[str]]]


@dataclass
class PackRules:
    """
    Rules for folding a target's manifest into the packaged root manifest.
    """

    # Merge the target's runtime dependencies into the shipped manifest.
    merge_dependencies: MergeRule = True
    # Merge the target's development dependencies into the shipped manifest.
    merge_dev_dependencies: MergeRule = False


@dataclass
class TargetConfig:
    """
    Configuration for one buildable target, as written in ``triforge.toml``.
    """

    # Package name or path relative to the project root.
    package: str
    # Entry file, or a table of named entry files. Falls back to the manifest "main".
    entry: Union[None, str, Dict[str, str]] = None
    # Unique id within its kind. Required for Bridge and UI targets.
    id: Optional[str] = None
    # Target-specific merge rules; the project-wide rules apply when unset.
    pack: Optional[PackRules] = None


@dataclass
class DevConfig:
    """
    Settings for the development loop.
    """

    # "manual": restart the Host on keypress only. "auto": also after every Host rebuild.
    restart_policy: str = "manual"
    # Seconds to wait for the old Host process to exit before killing it.
    restart_timeout: float = 5.0


@dataclass
class ToolsConfig:
    """
    Command lines of the external collaborators.
    """

    runtime: List[str] = field(default_factory=lambda: ["electron"])
    esbuild: List[str] = field(default_factory=lambda: ["esbuild"])
    vite: List[str] = field(default_factory=lambda: ["vite"])
    packager: List[str] = field(default_factory=lambda: ["electron-builder"])


@dataclass
class ProjectConfig:
    """
    The root configuration object for one project.
    """

    # Absolute project root (the directory holding triforge.toml).
    root: Path
    mode: str
    host: TargetConfig
    bridges: List[TargetConfig] = field(default_factory=list)
    uis: List[TargetConfig] = field(default_factory=list)
    # Directories copied next to the packaged application.
    resources: List[str] = field(default_factory=lambda: ["resources"])
    # Passed through to the packager untouched.
    builder: Dict[str, Any] = field(default_factory=dict)
    dev: DevConfig = field(default_factory=DevConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    # Project-wide merge rules.
    pack: PackRules = field(default_factory=PackRules)
