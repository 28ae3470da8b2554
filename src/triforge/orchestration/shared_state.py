"""
Shared data structures for the orchestration module.

This module defines the runtime state and the timeout constants used across
the orchestrator, the process supervisor and the operator channel.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..environment import EnvironmentSet
from ..models.targets import TargetDescriptor


@dataclass
class RuntimeState:
    """
    Runtime state shared across orchestration components.

    Populated by ``Orchestrator.initialize`` and read by everything started
    afterwards.
    """

    host: Optional[TargetDescriptor] = None
    bridges: List[TargetDescriptor] = field(default_factory=list)
    uis: List[TargetDescriptor] = field(default_factory=list)

    # Project base environment (env files plus ROOT_DIR)
    base_env: EnvironmentSet = field(default_factory=dict)
    # Variables loaded from each target's own env files, keyed by label
    target_envs: Dict[str, EnvironmentSet] = field(default_factory=dict)
    # Dev-server URL per UI id
    ui_urls: Dict[str, str] = field(default_factory=dict)

    shutdown_requested: asyncio.Event = field(default_factory=asyncio.Event)
    exit_code: Optional[int] = None

    @property
    def all_targets(self) -> List[TargetDescriptor]:
        targets = [self.host] if self.host else []
        return targets + self.bridges + self.uis

    def request_shutdown(self, exit_code: int = 0) -> None:
        """Record the first requested exit code and wake the run loop."""
        if self.exit_code is None:
            self.exit_code = exit_code
        self.shutdown_requested.set()


class TimeoutConstants:
    """
    Centralized timeout configuration.
    """

    # Process termination timeouts
    TERMINATION_GRACEFUL_TIMEOUT = 3
    TERMINATION_FORCE_TIMEOUT = 2

    # Default bound on waiting for a stopped child, overridden by dev.restart_timeout
    PROCESS_EXIT_TIMEOUT = 5.0

    # Waiting for engine processes after cancellation
    ENGINE_STOP_TIMEOUT = 5.0

    # Waiting for a dev server to report its URL
    DEV_SERVER_READY_TIMEOUT = 60.0
