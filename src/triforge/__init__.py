"""
triforge: build and process orchestration for multi-process desktop apps.

An application is made of three kinds of independently bundled targets:

- host: the privileged main process, exactly one
- bridge: preload scripts bridging host and UI, any number
- ui: renderer pages, any number

The package is organized into specialized modules:
- config: triforge.toml loading and validation
- models: configuration, target and event data structures
- validation: error taxonomy, error handling and validators
- targets: target resolution into descriptors
- environment: env files, environment composition, generated helper modules
- classification: bundled versus external imports
- executor: bundler engines, build driver and watch sessions
- system: process tree management
- orchestration: orchestrator, Host supervisor, operator controls
- packaging: manifest merging and the packager
- cli: command-line interface

Usage:
    From command line:
        triforge dev | preview | start | pack

    Programmatically:
        from triforge import Orchestrator, get_config
        orchestrator = Orchestrator(get_config())
        orchestrator.initialize()
        exit_code = asyncio.run(orchestrator.run())
"""

__version__ = "0.1.0"

from .config import clear_config_cache, get_config, set_config_path
from .models import ProjectConfig, TargetDescriptor, TargetKind
from .orchestration import Orchestrator, ProcessSupervisor
from .validation import TriforgeError

__all__ = [
    "__version__",
    "clear_config_cache",
    "get_config",
    "set_config_path",
    "ProjectConfig",
    "TargetDescriptor",
    "TargetKind",
    "Orchestrator",
    "ProcessSupervisor",
    "TriforgeError",
]
