"""
Build and process event models.

These records flow from the bundler engines and the process supervisor to
the orchestrator. Timestamps are taken from ``time.monotonic`` so ordering
between events of different sources can be compared.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..validation.exceptions import BuildError


class WatchEventType(str, Enum):
    """Kinds of events emitted by a watch session."""

    STARTED = "started"
    FILE_CHANGED = "file_changed"
    BUNDLE_START = "bundle_start"
    BUNDLE_END = "bundle_end"
    ERROR = "error"


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class WatchEvent:
    """
    One event of a watch session.

    Only FILE_CHANGED events carry ``path``/``change``; only ERROR events carry ``cause``.
    """

    type: WatchEventType
    target: str = ""
    path: Optional[Path] = None
    change: Optional[ChangeKind] = None
    cause: Optional[BuildError] = None
    # Set by engines that learn something at start, e.g. a dev-server URL.
    url: Optional[str] = None
    timestamp: float = field(default_factory=time.monotonic, compare=False)

    @classmethod
    def started(cls, target: str = "", url: Optional[str] = None) -> "WatchEvent":
        return cls(WatchEventType.STARTED, target=target, url=url)

    @classmethod
    def file_changed(cls, path: Path, change: ChangeKind, target: str = "") -> "WatchEvent":
        return cls(WatchEventType.FILE_CHANGED, target=target, path=Path(path), change=change)

    @classmethod
    def bundle_start(cls, target: str = "") -> "WatchEvent":
        return cls(WatchEventType.BUNDLE_START, target=target)

    @classmethod
    def bundle_end(cls, target: str = "") -> "WatchEvent":
        return cls(WatchEventType.BUNDLE_END, target=target)

    @classmethod
    def error(cls, cause: BuildError, target: str = "") -> "WatchEvent":
        return cls(WatchEventType.ERROR, target=target, cause=cause)


@dataclass
class BuildResult:
    """
    Terminal outcome of a one-shot build.
    """

    target: str
    success: bool
    artifacts: List[Path] = field(default_factory=list)
    error: Optional[BuildError] = None
    duration_seconds: float = 0.0

    @classmethod
    def ok(cls, target: str, artifacts: List[Path], duration_seconds: float = 0.0) -> "BuildResult":
        return cls(target=target, success=True, artifacts=list(artifacts),
                   duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, target: str, error: BuildError, duration_seconds: float = 0.0) -> "BuildResult":
        return cls(target=target, success=False, error=error,
                   duration_seconds=duration_seconds)

    def raise_for_error(self) -> None:
        """Raise the stored BuildError if the build failed."""
        if not self.success:
            raise self.error or BuildError(f"Build of {self.target} failed")


class ProcessEventType(str, Enum):
    SPAWNED = "spawned"
    EXITED = "exited"


@dataclass(frozen=True)
class ProcessEvent:
    """
    Lifecycle record of a supervised child process.
    """

    type: ProcessEventType
    generation: int
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    # True when the exit was caused by a supervisor-initiated restart or stop.
    requested: bool = False
    timestamp: float = field(default_factory=time.monotonic, compare=False)
