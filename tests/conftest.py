"""
Pytest configuration and shared fixtures for the triforge test suite.

This module provides a throwaway project tree (root manifest, Host, Bridge
and UI packages, triforge.toml) and fake bundler engines that write small
Python programs as bundles, so that the Host "runtime" can be the current
Python interpreter.
"""

import asyncio
import json
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import toml

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from triforge.config import (
    clear_config_cache,
    load_project_config,
    set_config_path,
    set_mode_override,
    validate_project_config,
)
from triforge.executor import BuildOptions, BundlerEngine, WatchSession
from triforge.models import TargetKind, WatchEvent
from triforge.models.targets import HOST_BUNDLE_NAME
from triforge.validation import BuildError


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "e2e: mark test as an end-to-end test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Helpers
# ============================================================================


def write_json(path: Path, data: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def write_file(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


# Host bundle written by the fake engine: a Python program standing in for
# the desktop runtime's main script.
HOST_PROGRAM = """\
import os, sys
print("host mode=" + os.environ.get("NODE_ENV", ""), flush=True)
print("bridge dir=" + os.environ.get("BRIDGE_DIR", ""), flush=True)
sys.exit(int(os.environ.get("HOST_EXIT_CODE", "0")))
"""


class FakeEngine(BundlerEngine):
    """
    Engine double recording every call.

    ``build`` writes a bundle into the output directory; ``watch`` publishes
    one complete build (or a ``started`` event with a URL for UI targets).
    Targets in ``fail_labels`` fail to build, and their watch publishes a
    failed cycle. Targets in ``stalled_labels`` never finish building and
    their watch reports nothing.
    """

    name = "fake"

    def __init__(self, fail_labels: Optional[List[str]] = None, host_program: str = HOST_PROGRAM,
                 stalled_labels: Optional[List[str]] = None):
        super().__init__(["fake"])
        self.fail_labels = list(fail_labels or [])
        self.stalled_labels = list(stalled_labels or [])
        self.host_program = host_program
        self.calls: List[tuple] = []
        self.options: Dict[str, BuildOptions] = {}
        self.sessions: Dict[str, WatchSession] = {}
        self.cancelled: List[str] = []

    def _write_output(self, options: BuildOptions) -> Path:
        output = options.output_path
        output.mkdir(parents=True, exist_ok=True)
        if options.target.kind is TargetKind.HOST:
            bundle = output / HOST_BUNDLE_NAME
            bundle.write_text(self.host_program, encoding="utf-8")
            return bundle
        bundle = output / "index.js"
        bundle.write_text("// bundle\n", encoding="utf-8")
        return bundle

    async def build(self, options: BuildOptions) -> List[Path]:
        label = options.target.label
        self.calls.append(("build", label))
        self.options[label] = options
        if label in self.fail_labels:
            raise BuildError(f"fake failed to build {label}", diagnostics=["Unexpected token"])
        if label in self.stalled_labels:
            await asyncio.Event().wait()
        return [self._write_output(options)]

    async def watch(self, options: BuildOptions, session: WatchSession) -> None:
        label = options.target.label
        self.calls.append(("watch", label))
        self.options[label] = options
        self.sessions[label] = session

        async def release() -> None:
            self.cancelled.append(label)

        session.add_cancel_callback(release)
        if label in self.stalled_labels:
            return
        if options.target.kind is TargetKind.UI:
            session.publish(WatchEvent.started(target=label, url=f"http://localhost:5173/{options.target.id}/"))
            return
        session.publish(WatchEvent.bundle_start(target=label))
        if label in self.fail_labels:
            cause = BuildError(f"fake failed to build {label}", diagnostics=["Unexpected token"])
            session.publish(WatchEvent.error(cause, target=label))
        else:
            self._write_output(options)
        session.publish(WatchEvent.bundle_end(target=label))


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path).resolve()
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_config_cache():
    clear_config_cache()
    yield
    set_config_path(None)
    set_mode_override(None)
    clear_config_cache()


@pytest.fixture
def sample_config_data():
    """Contents of triforge.toml for the sample project."""
    return {
        "mode": "development",
        "host": {"package": "host"},
        "bridges": [{"id": "main", "package": "bridge"}],
        "uis": [{"id": "main", "package": "ui", "entry": "index.html"}],
        "resources": ["resources"],
        "tools": {"runtime": [sys.executable]},
    }


@pytest.fixture
def project_tree(temp_dir, sample_config_data):
    """
    A complete sample project on disk.

    Layout::

        triforge.toml, package.json, .env
        host/    package.json (main: src/index.ts), .env.development
        bridge/  package.json (main: src/preload.ts)
        ui/      package.json, index.html
    """
    root = temp_dir / "app-project"
    write_json(root / "package.json", {
        "name": "demo-app",
        "version": "1.2.3",
        "dependencies": {"lodash": "^4.17.21"},
        "devDependencies": {"electron": "^30.0.0"},
    })
    write_file(root / ".env", "APP_NAME=demo\nSHARED=root\n")

    write_json(root / "host" / "package.json", {
        "name": "demo-host",
        "main": "src/index.ts",
        "dependencies": {"electron-store": "^8.0.0", "@scope/logger": "^1.0.0"},
        "devDependencies": {"typescript": "^5.0.0"},
    })
    write_file(root / "host" / "src" / "index.ts", "console.log('host');\n")
    write_file(root / "host" / ".env.development", "SHARED=host\n")

    write_json(root / "bridge" / "package.json", {
        "name": "demo-bridge",
        "main": "src/preload.ts",
        "dependencies": {"better-sqlite3": "^9.0.0"},
    })
    write_file(root / "bridge" / "src" / "preload.ts", "export {};\n")

    write_json(root / "ui" / "package.json", {
        "name": "demo-ui",
        "dependencies": {"react": "^18.0.0"},
    })
    write_file(root / "ui" / "index.html", "<html></html>\n")

    write_file(root / "triforge.toml", toml.dumps(sample_config_data))
    return root


def load_config(root: Path, mode: Optional[str] = None):
    """Load and validate the triforge.toml of a project tree."""
    raw = load_project_config(root / "triforge.toml")
    return validate_project_config(raw, root=root, mode_override=mode)


@pytest.fixture
def project_config(project_tree):
    """Validated development configuration of the sample project."""
    return load_config(project_tree)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def config_loader():
    """Callable loading a project tree's configuration, optionally in another mode."""
    return load_config


@pytest.fixture
def engine_factory():
    """The FakeEngine class, for tests that need a customized instance."""
    return FakeEngine
