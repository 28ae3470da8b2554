"""
Orchestration module.

Components:
- Orchestrator: initialization, the run modes and packaging
- ProcessSupervisor: Host process lifecycle
- KeyboardControl, SignalHandler: operator controls
- RuntimeState, TimeoutConstants: state and timeouts shared by the above
"""

from .control import KeyboardControl, SignalHandler
from .orchestrator import Orchestrator
from .shared_state import RuntimeState, TimeoutConstants
from .supervisor import ProcessSupervisor, SupervisorState

__all__ = [
    "KeyboardControl",
    "SignalHandler",
    "Orchestrator",
    "RuntimeState",
    "TimeoutConstants",
    "ProcessSupervisor",
    "SupervisorState",
]
