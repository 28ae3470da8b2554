"""
Integration tests for the Orchestrator.

A sample project is resolved for real; bundling is done by FakeEngine, which
writes a Python program as the Host bundle, and the configured runtime is the
current interpreter. The Host process therefore really starts, reads its
environment and exits.
"""

import asyncio
import json
import logging
import os
import signal
from unittest.mock import AsyncMock, Mock, patch

import pytest

from triforge.models import TargetKind, WatchEvent
from triforge.orchestration import Orchestrator, TimeoutConstants
from triforge.validation import BuildError, PackageNotFoundError, PackagingError


# Host bundle that stays up until it is stopped
SLEEPING_HOST = """\
import time
print("host up", flush=True)
time.sleep(60)
"""


def make_orchestrator(config, engine, **kwargs):
    return Orchestrator(config, engines={kind: engine for kind in TargetKind},
                        interactive=False, **kwargs)


async def wait_until(predicate, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.02)


def rebuild(session, label, failed=False):
    """Publish one rebuild cycle into a watch session."""
    session.publish(WatchEvent.bundle_start(target=label))
    if failed:
        session.publish(WatchEvent.error(BuildError("rebuild failed", ["Unexpected token"]), target=label))
    session.publish(WatchEvent.bundle_end(target=label))


@pytest.mark.integration
class TestInitialization:
    """Test cases for Orchestrator.initialize."""

    def test_targets_and_environment(self, project_tree, config_loader, fake_engine):
        orchestrator = make_orchestrator(config_loader(project_tree), fake_engine)
        orchestrator.initialize()
        state = orchestrator.state

        assert state.host.source_root == project_tree / "host"
        assert [b.label for b in state.bridges] == ["bridge:main"]
        assert [u.label for u in state.uis] == ["ui:main"]
        assert state.base_env["APP_NAME"] == "demo"
        assert state.base_env["ROOT_DIR"] == str(project_tree).replace("\\", "/")
        assert state.target_envs["host"] == {"SHARED": "host"}
        assert orchestrator.root_manifest["name"] == "demo-app"

    def test_missing_package_fails_early(self, project_tree, config_loader, fake_engine):
        config = config_loader(project_tree)
        config.bridges[0].package = "no-such-bridge"
        orchestrator = make_orchestrator(config, fake_engine)

        with pytest.raises(PackageNotFoundError):
            orchestrator.initialize()
        assert fake_engine.calls == []


@pytest.mark.integration
class TestProductionRun:
    """Test cases for preview/production runs."""

    @pytest.mark.asyncio
    async def test_run_until_host_exits(self, project_tree, config_loader, fake_engine, caplog):
        caplog.set_level(logging.INFO, logger="triforge.host")
        orchestrator = make_orchestrator(config_loader(project_tree, "production"), fake_engine)
        orchestrator.initialize()

        assert await orchestrator.run() == 0

        assert fake_engine.calls == [("build", "ui:main"), ("build", "bridge:main"), ("build", "host")]
        assert (project_tree / "app" / "host" / "index.cjs").is_file()
        assert "[stdout] host mode=production" in caplog.text
        bridge_dir = str(project_tree / "app" / "bridge" / "main").replace("\\", "/")
        assert f"[stdout] bridge dir={bridge_dir}" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_host_gives_exit_status_one(self, project_tree, config_loader, fake_engine):
        (project_tree / ".env").write_text("APP_NAME=demo\nHOST_EXIT_CODE=3\n")
        orchestrator = make_orchestrator(config_loader(project_tree, "preview"), fake_engine)
        orchestrator.initialize()

        assert await orchestrator.run() == 1
        assert orchestrator.supervisor.exit_code == 3

    @pytest.mark.asyncio
    async def test_build_failure_stops_the_sequence(self, project_tree, config_loader, engine_factory):
        engine = engine_factory(fail_labels=["bridge:main"])
        orchestrator = make_orchestrator(config_loader(project_tree, "production"), engine)
        orchestrator.initialize()

        with pytest.raises(BuildError):
            await orchestrator.run()

        assert engine.calls == [("build", "ui:main"), ("build", "bridge:main")]
        assert orchestrator.supervisor is None

    @pytest.mark.asyncio
    async def test_quit_during_build(self, project_tree, config_loader, engine_factory):
        engine = engine_factory(stalled_labels=["bridge:main"])
        orchestrator = make_orchestrator(config_loader(project_tree, "production"), engine)
        orchestrator.initialize()

        task = asyncio.create_task(orchestrator.run())
        await wait_until(lambda: ("build", "bridge:main") in engine.calls)
        orchestrator.request_quit()

        assert await asyncio.wait_for(task, 5) == 0
        assert engine.calls == [("build", "ui:main"), ("build", "bridge:main")]
        assert orchestrator.supervisor is None


@pytest.mark.integration
class TestDevelopmentRun:
    """Test cases for the development loop."""

    @pytest.mark.asyncio
    async def test_watch_order_and_dev_urls(self, project_tree, config_loader, fake_engine, caplog):
        caplog.set_level(logging.INFO, logger="triforge.host")
        orchestrator = make_orchestrator(config_loader(project_tree), fake_engine)
        orchestrator.initialize()

        assert await orchestrator.run() == 0

        assert fake_engine.calls == [("watch", "ui:main"), ("watch", "bridge:main"), ("watch", "host")]
        assert orchestrator.state.ui_urls == {"main": "http://localhost:5173/main/"}
        defines = fake_engine.options["host"].defines
        assert defines["process.env.UI_MAIN_URL"] == '"http://localhost:5173/main/"'
        assert defines["process.env.SHARED"] == '"host"'
        assert defines["process.env.NODE_ENV"] == '"development"'
        assert "[stdout] host mode=development" in caplog.text
        # Every watch is released on shutdown
        assert sorted(fake_engine.cancelled) == ["bridge:main", "host", "ui:main"]
        assert all(session.closed for session in orchestrator.sessions)

    @pytest.mark.asyncio
    async def test_quit_request(self, project_tree, config_loader, fake_engine):
        orchestrator = make_orchestrator(config_loader(project_tree), fake_engine)
        orchestrator.initialize()
        orchestrator.request_quit()

        assert orchestrator.state.exit_code == 0
        assert orchestrator.state.shutdown_requested.is_set()

    @pytest.mark.asyncio
    async def test_interrupt_while_first_host_build_fails(self, project_tree, config_loader,
                                                          engine_factory):
        engine = engine_factory(fail_labels=["host"])
        orchestrator = make_orchestrator(config_loader(project_tree), engine)
        orchestrator.initialize()

        task = asyncio.create_task(orchestrator.run())
        await wait_until(lambda: ("watch", "host") in engine.calls)
        # The failed Host watch stays alive, so only the interrupt ends the run
        await asyncio.sleep(0.1)
        assert not task.done()
        os.kill(os.getpid(), signal.SIGINT)

        assert await asyncio.wait_for(task, 5) == 0
        assert orchestrator.supervisor is None
        assert sorted(engine.cancelled) == ["bridge:main", "host", "ui:main"]

    @pytest.mark.asyncio
    async def test_silent_dev_server_is_a_build_error(self, project_tree, config_loader,
                                                      engine_factory):
        engine = engine_factory(stalled_labels=["ui:main"])
        orchestrator = make_orchestrator(config_loader(project_tree), engine)
        orchestrator.initialize()

        with patch.object(TimeoutConstants, "DEV_SERVER_READY_TIMEOUT", 0.1):
            with pytest.raises(BuildError) as exc_info:
                await asyncio.wait_for(orchestrator.run(), 5)

        assert "ui:main" in exc_info.value.message
        assert "did not report a URL" in exc_info.value.formatted()
        assert engine.calls == [("watch", "ui:main")]
        assert engine.cancelled == ["ui:main"]


@pytest.mark.integration
class TestRestartPolicy:
    """Test cases for Host restarts after rebuilds."""

    async def start_running(self, project_tree, config_loader, engine_factory, policy):
        config = config_loader(project_tree)
        config.dev.restart_policy = policy
        config.dev.restart_timeout = 2.0
        engine = engine_factory(host_program=SLEEPING_HOST)
        orchestrator = make_orchestrator(config, engine)
        orchestrator.initialize()

        task = asyncio.create_task(orchestrator.run())
        await wait_until(lambda: orchestrator.supervisor is not None and orchestrator.supervisor.running)
        return orchestrator, engine, task

    @pytest.mark.asyncio
    async def test_auto_restarts_after_clean_host_rebuild(self, project_tree, config_loader,
                                                          engine_factory):
        orchestrator, engine, task = await self.start_running(
            project_tree, config_loader, engine_factory, "auto"
        )
        supervisor = orchestrator.supervisor
        try:
            first_pid = supervisor.pid
            rebuild(engine.sessions["host"], "host")
            await wait_until(lambda: supervisor.generation == 2 and supervisor.running)
            assert supervisor.pid != first_pid
        finally:
            orchestrator.request_quit()
            assert await asyncio.wait_for(task, 10) == 0

    @pytest.mark.asyncio
    async def test_auto_keeps_host_after_failed_rebuild(self, project_tree, config_loader,
                                                        engine_factory):
        orchestrator, engine, task = await self.start_running(
            project_tree, config_loader, engine_factory, "auto"
        )
        supervisor = orchestrator.supervisor
        try:
            rebuild(engine.sessions["host"], "host", failed=True)
            await asyncio.sleep(0.3)
            assert supervisor.generation == 1

            # The next clean rebuild restarts it once
            rebuild(engine.sessions["host"], "host")
            await wait_until(lambda: supervisor.generation == 2 and supervisor.running)
            await asyncio.sleep(0.3)
            assert supervisor.generation == 2
        finally:
            orchestrator.request_quit()
            assert await asyncio.wait_for(task, 10) == 0

    @pytest.mark.asyncio
    async def test_bridge_and_ui_rebuilds_leave_host_alone(self, project_tree, config_loader,
                                                           engine_factory):
        orchestrator, engine, task = await self.start_running(
            project_tree, config_loader, engine_factory, "auto"
        )
        supervisor = orchestrator.supervisor
        try:
            rebuild(engine.sessions["bridge:main"], "bridge:main")
            rebuild(engine.sessions["ui:main"], "ui:main")
            await asyncio.sleep(0.3)
            assert supervisor.generation == 1
            assert supervisor.running
        finally:
            orchestrator.request_quit()
            assert await asyncio.wait_for(task, 10) == 0

    @pytest.mark.asyncio
    async def test_manual_ignores_host_rebuild(self, project_tree, config_loader, engine_factory):
        orchestrator, engine, task = await self.start_running(
            project_tree, config_loader, engine_factory, "manual"
        )
        supervisor = orchestrator.supervisor
        try:
            rebuild(engine.sessions["host"], "host")
            await asyncio.sleep(0.3)
            assert supervisor.generation == 1

            orchestrator.request_restart()
            await wait_until(lambda: supervisor.generation == 2 and supervisor.running)
        finally:
            orchestrator.request_quit()
            assert await asyncio.wait_for(task, 10) == 0


@pytest.mark.integration
class TestPack:
    """Test cases for packaging."""

    @pytest.mark.asyncio
    async def test_pack_writes_manifest(self, project_tree, config_loader, fake_engine):
        packager = Mock()
        packager.run = AsyncMock()
        orchestrator = make_orchestrator(config_loader(project_tree, "production"), fake_engine,
                                         packager=packager)
        orchestrator.initialize()

        manifest_path = await orchestrator.pack()

        assert manifest_path == project_tree / "app" / "package.json"
        manifest = json.loads(manifest_path.read_text())
        assert manifest["main"] == "host/index.cjs"
        assert manifest["scripts"] == {"postinstall": "electron-builder install-app-deps"}
        assert manifest["dependencies"] == {
            "lodash": "^4.17.21",
            "electron-store": "^8.0.0",
            "@scope/logger": "^1.0.0",
            "better-sqlite3": "^9.0.0",
            "react": "^18.0.0",
        }
        assert manifest["devDependencies"] == {"electron": "^30.0.0"}

        config = packager.run.await_args.args[0]
        assert config["extraFiles"] == [{"from": "resources", "to": "resources"}]
        assert config["directories"]["output"].endswith("${os} ${arch}")

    @pytest.mark.asyncio
    async def test_pack_requires_production(self, project_tree, config_loader, fake_engine):
        orchestrator = make_orchestrator(config_loader(project_tree), fake_engine, packager=Mock())
        orchestrator.initialize()

        with pytest.raises(PackagingError):
            await orchestrator.pack()
        assert fake_engine.calls == []
