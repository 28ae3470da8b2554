"""
Data models for the orchestrator.

Configuration Models:
- Project-wide settings and per-target definitions

Target Models:
- Resolved, immutable target descriptors and the output path rule

Event Models:
- Watch events, build results and supervised process events
"""

from .config import (
    MODES,
    RESTART_POLICIES,
    DevConfig,
    MergeRule,
    PackRules,
    ProjectConfig,
    TargetConfig,
    ToolsConfig,
)
from .events import (
    BuildResult,
    ChangeKind,
    ProcessEvent,
    ProcessEventType,
    WatchEvent,
    WatchEventType,
)
from .targets import (
    APP_DIR_NAME,
    HOST_BUNDLE_NAME,
    HOST_ID,
    TargetDescriptor,
    TargetKind,
    output_path,
)

__all__ = [
    # Configuration
    "MODES",
    "RESTART_POLICIES",
    "DevConfig",
    "MergeRule",
    "PackRules",
    "ProjectConfig",
    "TargetConfig",
    "ToolsConfig",
    # Targets
    "APP_DIR_NAME",
    "HOST_BUNDLE_NAME",
    "HOST_ID",
    "TargetDescriptor",
    "TargetKind",
    "output_path",
    # Events
    "BuildResult",
    "ChangeKind",
    "ProcessEvent",
    "ProcessEventType",
    "WatchEvent",
    "WatchEventType",
]
