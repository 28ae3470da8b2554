"""
Bundler engines.

An engine turns BuildOptions into artifacts on disk. Two command-line
bundlers are driven as child processes:

- EsbuildEngine bundles the Host and Bridge targets into single CommonJS
  files for the Node.js side of the runtime.
- ViteEngine builds UI targets and serves them in development.

Both run through asyncio subprocesses; output lines are forwarded to the
target's logger and parsed for build boundaries and diagnostics.
"""

import asyncio
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional

from ..classification import INTERNAL_NAMESPACES
from ..models.events import ChangeKind, WatchEvent
from ..models.targets import HOST_BUNDLE_NAME, EntrySpec, TargetDescriptor
from ..system import terminate_process_tree
from ..validation.exceptions import BuildError
from .watch import WatchSession

logger = logging.getLogger(__name__)

# Color and cursor control sequences emitted by interactive tools.
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

_ESBUILD_ERROR = re.compile(r"\[ERROR\]\s*(.*)")
_ESBUILD_REBUILD = re.compile(r'\[watch\] build started(?: \(change: "(.+)"\))?')
_ESBUILD_FINISHED = re.compile(r"\[watch\] build finished")
_VITE_LOCAL_URL = re.compile(r"Local:\s+(https?://\S+)")
_VITE_ERROR = re.compile(r"(?i)\berror\b")

# Seconds to wait for an engine process tree after SIGTERM and SIGKILL.
TERMINATION_GRACEFUL_TIMEOUT = 3
TERMINATION_FORCE_TIMEOUT = 2

# Seconds to wait for an engine process and its output readers to finish.
ENGINE_STOP_TIMEOUT = 5.0


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


def target_logger(target: TargetDescriptor) -> logging.Logger:
    """Per-target logger, e.g. ``triforge.target.bridge.primary``."""
    return logging.getLogger(f"triforge.target.{target.kind.value}.{target.id}")


@dataclass
class BuildOptions:
    """
    Everything an engine needs to bundle one target.
    """

    target: TargetDescriptor
    entry: EntrySpec
    output_path: Path
    mode: str
    externals: FrozenSet[str]
    defines: Dict[str, str]
    # Virtual module name -> generated file
    aliases: Dict[str, Path] = field(default_factory=dict)
    # Variables exported to the engine process itself
    env: Dict[str, str] = field(default_factory=dict)
    tree_shaking: bool = True
    # Directory for generated engine configuration files
    work_dir: Optional[Path] = None

    @property
    def minify(self) -> bool:
        return self.mode == "production"

    @property
    def sourcemap(self) -> bool:
        return self.mode == "development"


class _EngineProcess:
    """A running engine child process with its output readers."""

    def __init__(self, name: str, process: asyncio.subprocess.Process,
                 on_line: Callable[[str, str], None]):
        self.name = name
        self.process = process
        self.lines: List[str] = []
        self._readers = [
            asyncio.create_task(self._read(process.stdout, "stdout", on_line)),
            asyncio.create_task(self._read(process.stderr, "stderr", on_line)),
        ]

    @classmethod
    async def spawn(cls, name: str, command: List[str], cwd: Path,
                    env: Mapping[str, str], on_line: Callable[[str, str], None]) -> "_EngineProcess":
        logger.debug(f"Starting {name}: {' '.join(command)} (cwd: {cwd})")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                env={**os.environ, **env},
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BuildError(f"failed to start {name}", diagnostics=[str(e)]) from e
        return cls(name, process, on_line)

    async def _read(self, stream: Optional[asyncio.StreamReader], channel: str,
                    on_line: Callable[[str, str], None]) -> None:
        if stream is None:
            return
        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = strip_ansi(raw.decode("utf-8", errors="replace")).strip()
            if not line:
                continue
            self.lines.append(line)
            on_line(channel, line)

    async def wait(self) -> int:
        code = await self.process.wait()
        await asyncio.gather(*self._readers, return_exceptions=True)
        return code

    async def stop(self) -> None:
        if self.process.returncode is None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None, terminate_process_tree, self.process.pid, self.name,
                TERMINATION_GRACEFUL_TIMEOUT, TERMINATION_FORCE_TIMEOUT,
            )
        try:
            await asyncio.wait_for(self.wait(), ENGINE_STOP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} did not exit in time")
            for reader in self._readers:
                reader.cancel()


class BundlerEngine(ABC):
    """
    Abstract base for the tools that bundle targets.
    """

    name = "engine"

    def __init__(self, command: Optional[List[str]] = None):
        self.command = list(command or [])

    @abstractmethod
    async def build(self, options: BuildOptions) -> List[Path]:
        """
        Bundle once and write the output.

        Returns:
            The written artifacts

        Raises:
            BuildError: With the engine diagnostics when bundling fails
        """

    @abstractmethod
    async def watch(self, options: BuildOptions, session: WatchSession) -> None:
        """
        Start watching and publish events into ``session``.

        Returns once the engine is running; cancelling the session stops it.

        Raises:
            BuildError: If the engine cannot be started
        """

    async def _run_once(self, options: BuildOptions, command: List[str]) -> List[str]:
        tlog = target_logger(options.target)
        diagnostics: List[str] = []

        def on_line(channel: str, line: str) -> None:
            if self.is_error_line(line):
                diagnostics.append(self.diagnostic(line))
                tlog.error(line)
            else:
                tlog.info(line)

        child = await _EngineProcess.spawn(
            f"{self.name} ({options.target.label})", command,
            options.target.source_root, options.env, on_line,
        )
        try:
            code = await child.wait()
        except asyncio.CancelledError:
            await child.stop()
            raise
        if code != 0:
            raise BuildError(
                f"{self.name} failed to build {options.target.label}",
                diagnostics=diagnostics or child.lines[-10:],
                exit_code=code,
            )
        return child.lines

    def is_error_line(self, line: str) -> bool:
        return False

    def diagnostic(self, line: str) -> str:
        return line


class EsbuildEngine(BundlerEngine):
    """
    Bundles Node.js side targets with the esbuild command line.
    """

    name = "esbuild"

    def __init__(self, command: Optional[List[str]] = None):
        super().__init__(command or ["esbuild"])

    def arguments(self, options: BuildOptions) -> List[str]:
        """Translate options into esbuild flags."""
        args: List[str] = []
        if isinstance(options.entry, Mapping):
            for name, path in sorted(options.entry.items()):
                args.append(f"{name}={path}")
            args.append(f"--outdir={options.output_path}")
            args.append("--out-extension:.js=.cjs")
        else:
            args.append(str(options.entry))
            args.append(f"--outfile={options.output_path / HOST_BUNDLE_NAME}")

        args += [
            "--bundle",
            "--platform=node",
            "--format=cjs",
            f"--tree-shaking={'true' if options.tree_shaking else 'false'}",
            "--log-level=info",
        ]
        if options.minify:
            args.append("--minify")
        if options.sourcemap:
            args.append("--sourcemap")
        for name in sorted(options.externals):
            args.append(f"--external:{name}")
        for key, value in options.defines.items():
            args.append(f"--define:{key}={value}")
        for name, path in sorted(options.aliases.items()):
            args.append(f"--alias:{name}={path}")
        return args

    def artifacts(self, options: BuildOptions) -> List[Path]:
        if isinstance(options.entry, Mapping):
            return [options.output_path / f"{name}.cjs" for name in sorted(options.entry)]
        return [options.output_path / HOST_BUNDLE_NAME]

    def is_error_line(self, line: str) -> bool:
        return _ESBUILD_ERROR.search(line) is not None

    def diagnostic(self, line: str) -> str:
        match = _ESBUILD_ERROR.search(line)
        return match.group(1) if match else line

    async def build(self, options: BuildOptions) -> List[Path]:
        await self._run_once(options, self.command + self.arguments(options))
        return self.artifacts(options)

    async def watch(self, options: BuildOptions, session: WatchSession) -> None:
        tlog = target_logger(options.target)
        label = options.target.label
        diagnostics: List[str] = []

        def on_line(channel: str, line: str) -> None:
            rebuild = _ESBUILD_REBUILD.search(line)
            if rebuild:
                diagnostics.clear()
                if rebuild.group(1):
                    session.publish(WatchEvent.file_changed(
                        options.target.source_root / rebuild.group(1),
                        _change_kind(options.target.source_root / rebuild.group(1)),
                        target=label,
                    ))
                session.publish(WatchEvent.bundle_start(target=label))
                tlog.info(line)
                return
            if _ESBUILD_FINISHED.search(line):
                if diagnostics:
                    session.publish(WatchEvent.error(
                        BuildError(f"{self.name} failed to build {label}",
                                   diagnostics=list(diagnostics)),
                        target=label,
                    ))
                session.publish(WatchEvent.bundle_end(target=label))
                tlog.info(line)
                return
            if self.is_error_line(line):
                diagnostics.append(self.diagnostic(line))
                tlog.error(line)
            else:
                tlog.info(line)

        command = self.command + self.arguments(options) + ["--watch=forever"]
        session.publish(WatchEvent.bundle_start(target=label))
        child = await _EngineProcess.spawn(
            f"{self.name} watch ({label})", command, options.target.source_root,
            options.env, on_line,
        )
        _supervise(child, session)


class ViteEngine(BundlerEngine):
    """
    Builds and serves UI targets with the vite command line.

    A generated configuration file layers triforge's settings (output
    directory, substitutions, aliases, externals) over the UI package's own
    vite configuration.
    """

    name = "vite"

    def __init__(self, command: Optional[List[str]] = None):
        super().__init__(command or ["vite"])

    def write_config(self, options: BuildOptions) -> Path:
        """Write the generated vite configuration and return its path."""
        work_dir = options.work_dir or options.target.source_root
        work_dir.mkdir(parents=True, exist_ok=True)
        path = work_dir / f"vite.{options.target.id}.config.mjs"
        path.write_text(render_vite_config(options), encoding="utf-8")
        return path

    def is_error_line(self, line: str) -> bool:
        return _VITE_ERROR.search(line) is not None

    async def build(self, options: BuildOptions) -> List[Path]:
        config = self.write_config(options)
        command = self.command + ["build", "--config", str(config), "--mode", options.mode]
        await self._run_once(options, command)
        return [options.output_path]

    async def watch(self, options: BuildOptions, session: WatchSession) -> None:
        tlog = target_logger(options.target)
        label = options.target.label

        def on_line(channel: str, line: str) -> None:
            match = _VITE_LOCAL_URL.search(line)
            if match and session.url is None:
                session.publish(WatchEvent.started(target=label, url=match.group(1)))
            if channel == "stderr" or self.is_error_line(line):
                tlog.warning(line)
            else:
                tlog.info(line)

        config = self.write_config(options)
        command = self.command + ["--config", str(config), "--mode", options.mode]
        child = await _EngineProcess.spawn(
            f"{self.name} dev server ({label})", command, options.target.source_root,
            options.env, on_line,
        )
        _supervise(child, session)


def _change_kind(path: Path) -> ChangeKind:
    """
    Map a path reported by a rebuild to a change kind.

    esbuild names the changed path without saying how it changed, so a new
    file is reported as UPDATED and only a vanished path as DELETED.
    """
    return ChangeKind.UPDATED if path.exists() else ChangeKind.DELETED


def _supervise(child: _EngineProcess, session: WatchSession) -> None:
    """Tie the lifetime of an engine process to a session."""

    async def watch_exit() -> None:
        code = await child.wait()
        if not session.closed:
            session.fail(BuildError(
                f"{child.name} exited unexpectedly",
                diagnostics=child.lines[-10:],
                exit_code=code,
            ))

    monitor = asyncio.create_task(watch_exit())

    async def release() -> None:
        monitor.cancel()
        await child.stop()

    session.add_cancel_callback(release)


def render_vite_config(options: BuildOptions) -> str:
    """
    Render a vite configuration module for one UI target.

    The module loads the package's own configuration file, if any, and merges
    the generated settings over it.
    """
    overrides = {
        "root": str(options.target.source_root),
        "base": "./",
        "mode": options.mode,
        "clearScreen": False,
        "define": options.defines,
        "resolve": {"alias": {name: str(path) for name, path in sorted(options.aliases.items())}},
        "server": {"fs": {"strict": False}},
        "build": {
            "outDir": str(options.output_path),
            "emptyOutDir": True,
            "minify": options.minify,
            "sourcemap": options.sourcemap,
        },
    }
    entry = options.entry
    if isinstance(entry, Mapping):
        overrides["build"]["rollupOptions"] = {
            "input": {name: str(path) for name, path in sorted(entry.items())}
        }

    return VITE_CONFIG_TEMPLATE.format(
        externals=json.dumps(sorted(options.externals)),
        namespaces=json.dumps(list(INTERNAL_NAMESPACES)),
        overrides=json.dumps(overrides, indent=2),
        root=json.dumps(str(options.target.source_root)),
    )


# The external predicate below mirrors triforge.classification.is_external.
VITE_CONFIG_TEMPLATE = """\
import {{ loadConfigFromFile, mergeConfig }} from "vite";

const externals = new Set({externals});
const namespaces = {namespaces};

function moduleName(source) {{
  const parts = source.replace(/\\\\/g, "/").split("/").filter(Boolean);
  if (parts.length > 1 && parts[0].startsWith("@")) {{
    return `${{parts[0]}}/${{parts[1]}}`;
  }}
  return parts[0] ?? source;
}}

function isExternal(source, importer) {{
  if (importer === undefined) return false;
  if (source.startsWith(".") || source.startsWith("/") || /^[A-Za-z]:[\\\\/]/.test(source)) return false;
  if (namespaces.some((ns) => source === ns || source.startsWith(`${{ns}}/`))) return false;
  const normalized = source.replace(/\\\\/g, "/");
  return externals.has(normalized) || externals.has(moduleName(normalized));
}}

const overrides = {overrides};
overrides.build.rollupOptions = {{ ...(overrides.build.rollupOptions ?? {{}}), external: isExternal }};

export default async ({{ command, mode }}) => {{
  const loaded = await loadConfigFromFile({{ command, mode }}, undefined, {root});
  return mergeConfig(loaded ? loaded.config : {{}}, overrides);
}};
"""
