"""
Build driver.

Translates a TargetDescriptor plus the current runtime state into engine
options, and runs one-shot builds or watch sessions through the engine that
handles the target's kind.
"""

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from ..classification import build_external_set
from ..environment import compose, to_defines, write_helper_modules
from ..environment.helpers import GENERATED_DIR_NAME
from ..models.events import BuildResult
from ..models.targets import TargetDescriptor, TargetKind
from ..validation.exceptions import BuildError, TriforgeError
from .engines import BuildOptions, BundlerEngine, EsbuildEngine, ViteEngine
from .watch import WatchSession

if TYPE_CHECKING:
    from ..models.config import ProjectConfig
    from ..orchestration.shared_state import RuntimeState

logger = logging.getLogger(__name__)


def default_engines(project: "ProjectConfig") -> Dict[TargetKind, BundlerEngine]:
    """Engines for each target kind, using the configured tool commands."""
    esbuild = EsbuildEngine(project.tools.esbuild)
    return {
        TargetKind.HOST: esbuild,
        TargetKind.BRIDGE: esbuild,
        TargetKind.UI: ViteEngine(project.tools.vite),
    }


class BuildDriver:
    """
    Runs builds and watches for targets.

    The driver reads the initialized targets, the base environment and the
    known dev-server URLs from the shared runtime state at the time each
    build starts, so options always reflect the latest state.
    """

    def __init__(
        self,
        project: "ProjectConfig",
        state: "RuntimeState",
        root_manifest: Optional[Mapping[str, Any]] = None,
        engines: Optional[Dict[TargetKind, BundlerEngine]] = None,
    ):
        self.project = project
        self.state = state
        self.root_manifest = dict(root_manifest or {})
        self.engines = engines or default_engines(project)

    @property
    def mode(self) -> str:
        return self.project.mode

    def engine_for(self, target: TargetDescriptor) -> BundlerEngine:
        return self.engines[target.kind]

    def derive_options(self, target: TargetDescriptor) -> BuildOptions:
        """
        Compute the engine options for ``target``.

        Writes the generated helper modules as a side effect; everything else
        is derived from the descriptor and the runtime state.
        """
        env = compose(
            target,
            self.state.all_targets,
            self.state.base_env,
            self.mode,
            target_env=self.state.target_envs.get(target.label),
            ui_urls=self.state.ui_urls,
        )
        aliases = write_helper_modules(
            target, self.state.all_targets, self.mode, self.project.root, self.state.ui_urls
        )
        return BuildOptions(
            target=target,
            entry=target.entry,
            output_path=target.output_path,
            mode=self.mode,
            externals=build_external_set(target, self.root_manifest),
            defines=to_defines(env),
            aliases=aliases,
            env={"NODE_ENV": self.mode},
            tree_shaking=True,
            work_dir=Path(self.project.root) / GENERATED_DIR_NAME / "config",
        )

    async def build_once(self, target: TargetDescriptor) -> BuildResult:
        """
        Bundle ``target`` once and write the output.

        Engine diagnostics are returned inside the result rather than raised.
        """
        start = time.monotonic()
        options = self.derive_options(target)
        logger.info(f"Building {target.label} ({self.mode})...")
        try:
            artifacts = await self.engine_for(target).build(options)
        except BuildError as e:
            duration = time.monotonic() - start
            logger.error(f"Build of {target.label} failed after {duration:.2f}s")
            return BuildResult.failed(target.label, e, duration)
        except TriforgeError as e:
            duration = time.monotonic() - start
            return BuildResult.failed(
                target.label, BuildError(e.message, diagnostics=[e.detail or e.message]), duration
            )

        duration = time.monotonic() - start
        logger.info(f"Built {target.label} in {duration:.2f}s")
        return BuildResult.ok(target.label, artifacts, duration)

    async def watch(self, target: TargetDescriptor) -> WatchSession:
        """
        Start a watch (or dev server for UI targets) on ``target``.

        Raises:
            BuildError: If the engine cannot be started
        """
        options = self.derive_options(target)
        session = WatchSession(target.label)
        logger.info(f"Watching {target.label}...")
        await self.engine_for(target).watch(options, session)
        return session
