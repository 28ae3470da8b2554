"""
The orchestrator.

Coordinates one run of triforge: resolves the targets of the project, builds
or watches them in dependency order, supervises the Host process, and
assembles the packaged application.
"""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ..config.loader import load_package_json
from ..environment import compose, load_env_files, normalize_path
from ..environment.helpers import GENERATED_DIR_NAME
from ..executor import BuildDriver, BundlerEngine, WatchSession
from ..models.config import ProjectConfig
from ..models.events import WatchEventType
from ..models.targets import APP_DIR_NAME, TargetDescriptor, TargetKind
from ..packaging import Packager, builder_config, merge_manifests, write_manifest
from ..targets import build_descriptor, build_descriptors
from ..validation import BuildError, ErrorSeverity, PackagingError, handle_error
from .control import KeyboardControl, SignalHandler
from .shared_state import RuntimeState, TimeoutConstants
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Runs the development, preview, production and pack flows.

    ``initialize`` must be called before any of the other operations; it
    resolves every target up front so that configuration mistakes surface
    before anything is built.
    """

    def __init__(
        self,
        project: ProjectConfig,
        engines: Optional[Dict[TargetKind, BundlerEngine]] = None,
        packager: Optional[Packager] = None,
        debug: bool = False,
        interactive: bool = True,
    ):
        """
        Args:
            project: Validated project configuration
            engines: Bundler engine per target kind, defaults to esbuild and vite
            packager: Packager to use for ``pack``, defaults to the configured command
            debug: Show error details in log output
            interactive: Read operator keystrokes from the terminal
        """
        self.project = project
        self.debug = debug
        self.interactive = interactive
        self.state = RuntimeState()
        self.root_manifest: Dict[str, Any] = {}

        self.driver: Optional[BuildDriver] = None
        self.supervisor: Optional[ProcessSupervisor] = None
        self.sessions: List[WatchSession] = []
        self.signal_handler = SignalHandler(self.state)
        self.keyboard: Optional[KeyboardControl] = None

        self._engines = engines
        self._packager = packager
        self._tasks: Set[asyncio.Task] = set()

    @property
    def root(self) -> Path:
        return Path(self.project.root)

    @property
    def mode(self) -> str:
        return self.project.mode

    # --- Initialization ---

    def initialize(self) -> None:
        """
        Resolve the Host, then the Bridges, then the UIs, then the base env.

        Raises:
            ConfigurationError: On the first missing package, manifest or entry,
                or a duplicate target id
        """
        logger.info(f"Initializing project at {self.root} ({self.mode})")
        self.root_manifest = load_package_json(self.root)

        state = self.state
        state.host = build_descriptor(TargetKind.HOST, self.project.host, self.project)
        state.bridges = build_descriptors(TargetKind.BRIDGE, self.project.bridges, self.project)
        state.uis = build_descriptors(TargetKind.UI, self.project.uis, self.project)

        state.base_env = load_env_files(self.root, self.mode)
        state.base_env["ROOT_DIR"] = normalize_path(self.root)
        for target in state.all_targets:
            if target.source_root != self.root:
                state.target_envs[target.label] = load_env_files(target.source_root, self.mode)

        self.driver = BuildDriver(self.project, state, self.root_manifest, self._engines)
        logger.info(
            f"Resolved host, {len(state.bridges)} bridge(s) and {len(state.uis)} UI(s)"
        )

    def _require_initialized(self) -> BuildDriver:
        if self.driver is None or self.state.host is None:
            raise RuntimeError("Orchestrator.initialize() must be called first")
        return self.driver

    # --- Running ---

    async def run(self) -> int:
        """
        Run the project in the configured mode until the Host exits or the
        operator quits.

        Returns:
            Process exit status: 0 on a clean shutdown, 1 otherwise
        """
        self._require_initialized()
        self.signal_handler.setup_signal_handlers()
        self._start_keyboard()
        startup = asyncio.create_task(self._start())
        quit_requested = asyncio.create_task(self.state.shutdown_requested.wait())
        try:
            # A quit request must win over a startup stuck on a failing build
            await asyncio.wait({startup, quit_requested}, return_when=asyncio.FIRST_COMPLETED)
            if startup.done():
                startup.result()
            else:
                logger.info("Shutdown requested during startup")
                startup.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await startup
            await self.state.shutdown_requested.wait()
            return self.state.exit_code or 0
        finally:
            for task in (startup, quit_requested):
                if not task.done():
                    task.cancel()
            await self.shutdown()
            self.signal_handler.cleanup_signal_handlers()

    async def _start(self) -> None:
        if self.mode == "development":
            await self._start_development()
        else:
            await self.build_all()
            await self._start_host()

    async def build_all(self) -> None:
        """
        Build the UIs, then the Bridges, then the Host, one at a time.

        Raises:
            BuildError: For the first target that fails to build
        """
        driver = self._require_initialized()
        for target in self.state.uis + self.state.bridges + [self.state.host]:
            result = await driver.build_once(target)
            result.raise_for_error()

    async def _start_development(self) -> None:
        driver = self._require_initialized()

        # UI dev servers come first: their URLs are part of everyone else's env
        ui_sessions = []
        for ui in self.state.uis:
            ui_sessions.append(await self._watch(ui))
        await asyncio.gather(*(
            self._wait_for_dev_server(ui, session)
            for ui, session in zip(self.state.uis, ui_sessions)
        ))
        for ui, session in zip(self.state.uis, ui_sessions):
            if session.url:
                self.state.ui_urls[ui.id] = session.url
                logger.info(f"{ui.label} served at {session.url}")

        bridge_sessions = [await self._watch(bridge) for bridge in self.state.bridges]
        host_session = await self._watch(self.state.host)
        await asyncio.gather(*(session.wait_ready() for session in bridge_sessions))
        await host_session.wait_ready()

        await self._start_host()

    async def _wait_for_dev_server(self, ui: TargetDescriptor, session: WatchSession) -> None:
        timeout = TimeoutConstants.DEV_SERVER_READY_TIMEOUT
        try:
            await session.wait_ready(timeout)
        except asyncio.TimeoutError:
            raise BuildError(
                f"Dev server of {ui.label} did not report a URL within {timeout:g}s"
            ) from None

    async def _watch(self, target: TargetDescriptor) -> WatchSession:
        session = await self.driver.watch(target)
        self.sessions.append(session)
        restart = target.kind is TargetKind.HOST and self.project.dev.restart_policy == "auto"
        self._spawn_task(self._follow(session, restart))
        return session

    async def _follow(self, session: WatchSession, restart_on_rebuild: bool) -> None:
        """Consume watch events: report errors, restart the Host if asked to."""
        failed = False
        async for event in session:
            if event.type is WatchEventType.BUNDLE_START:
                failed = False
            elif event.type is WatchEventType.ERROR:
                failed = True
                logger.error(f"{session.target}: {event.cause.formatted(self.debug)}")
            elif event.type is WatchEventType.BUNDLE_END:
                logger.info(f"{session.target} rebuilt")
                if restart_on_rebuild and not failed and self.supervisor and self.supervisor.running:
                    await self.supervisor.restart()
        if session.failure is not None:
            self.state.request_shutdown(1)

    def _host_env(self) -> Dict[str, str]:
        host = self.state.host
        return compose(
            host,
            self.state.all_targets,
            self.state.base_env,
            self.mode,
            target_env=self.state.target_envs.get(host.label),
            ui_urls=self.state.ui_urls,
        )

    async def _start_host(self) -> None:
        host = self.state.host
        cwd = self.root if self.mode == "production" else host.source_root
        self.supervisor = ProcessSupervisor(
            command=self.project.tools.runtime + [str(host.bundle_file)],
            cwd=cwd,
            env=self._host_env(),
            restart_timeout=self.project.dev.restart_timeout,
            on_exit=self._on_host_exit,
        )
        await self.supervisor.start()

    def _on_host_exit(self, exit_code: int) -> None:
        self.state.request_shutdown(0 if exit_code == 0 else 1)

    # --- Operator actions ---

    def _start_keyboard(self) -> None:
        if not self.interactive:
            return
        self.keyboard = KeyboardControl(on_restart=self.request_restart, on_quit=self.request_quit)
        if self.keyboard.start():
            logger.info("Press m to restart the app, q to quit")

    def request_restart(self) -> None:
        """Restart the Host process, if it is running."""
        if self.supervisor is None:
            return
        self._spawn_task(self.supervisor.restart())

    def request_quit(self) -> None:
        logger.info("Quitting...")
        self.state.request_shutdown(0)

    def _spawn_task(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            handle_error(error, "background task", ErrorSeverity.ERROR, reraise=False,
                         logger=logger, debug=self.debug)
            self.state.request_shutdown(1)

    async def shutdown(self) -> None:
        """Stop the keyboard reader, all watches and the Host process."""
        if self.keyboard is not None:
            self.keyboard.stop()
            self.keyboard = None
        for session in self.sessions:
            await session.cancel()
        if self.supervisor is not None:
            await self.supervisor.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.debug("Shutdown complete")

    # --- Packaging ---

    async def pack(self) -> Path:
        """
        Build everything for production and package the application.

        Returns:
            Path of the written ``app/package.json``

        Raises:
            BuildError: If a target fails to build
            PackagingError: If the merged manifest is invalid or the packager fails
        """
        self._require_initialized()
        if self.mode != "production":
            raise PackagingError(f"packaging requires production mode, not {self.mode}")

        logger.info("Building for production...")
        await self.build_all()

        app_dir = self.root / APP_DIR_NAME
        manifest = merge_manifests(
            self.root_manifest, self.state.all_targets, self.project.pack, self.state.host, app_dir
        )
        manifest_path = write_manifest(manifest, self.root)

        logger.info("Packing application...")
        packager = self._packager or Packager(
            self.project.tools.packager, self.root, self.root / GENERATED_DIR_NAME / "config"
        )
        await packager.run(builder_config(self.root, self.project.builder, self.project.resources))
        logger.info("Done")
        return manifest_path
