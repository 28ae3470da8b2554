"""
Unit tests for the bundler engines.

Command-line bundlers are replaced by small Python programs printing the
same progress lines, so the parsing and process handling run for real.
"""

import asyncio
import json
import sys
import textwrap
from pathlib import Path

import pytest

from triforge.executor import BuildOptions, EsbuildEngine, ViteEngine, WatchSession
from triforge.executor.engines import _change_kind, strip_ansi
from triforge.models import ChangeKind, TargetDescriptor, TargetKind, WatchEventType
from triforge.validation import BuildError


def make_options(root: Path, kind: TargetKind = TargetKind.HOST, mode: str = "development",
                 entry=None) -> BuildOptions:
    target = TargetDescriptor(
        kind=kind,
        id="host" if kind is TargetKind.HOST else "main",
        source_root=root,
        entry=entry or root / "src" / "index.ts",
        output_path=root / "dist",
    )
    return BuildOptions(
        target=target,
        entry=target.entry,
        output_path=target.output_path,
        mode=mode,
        externals=frozenset({"electron", "fs"}),
        defines={"process.env.NODE_ENV": json.dumps(mode)},
        aliases={"triforge/utils/helper": root / ".triforge" / "utils-helper.mjs"},
        work_dir=root / ".triforge" / "config",
    )


def fake_tool(script: str):
    """Command running ``script`` with the interpreter; extra arguments are ignored."""
    return [sys.executable, "-c", textwrap.dedent(script)]


@pytest.mark.unit
class TestEsbuildArguments:
    """Test cases for the esbuild command line."""

    def test_single_entry(self, temp_dir):
        options = make_options(temp_dir)
        args = EsbuildEngine().arguments(options)

        assert args[0] == str(temp_dir / "src" / "index.ts")
        assert f"--outfile={temp_dir / 'dist' / 'index.cjs'}" in args
        assert "--bundle" in args
        assert "--platform=node" in args
        assert "--format=cjs" in args
        assert "--tree-shaking=true" in args
        assert "--sourcemap" in args
        assert "--minify" not in args
        assert "--external:electron" in args
        assert "--external:fs" in args
        assert '--define:process.env.NODE_ENV="development"' in args
        assert f"--alias:triforge/utils/helper={temp_dir / '.triforge' / 'utils-helper.mjs'}" in args

    def test_production_minifies(self, temp_dir):
        args = EsbuildEngine().arguments(make_options(temp_dir, mode="production"))
        assert "--minify" in args
        assert "--sourcemap" not in args

    def test_named_entries(self, temp_dir):
        entry = {"preload": temp_dir / "a.ts", "extra": temp_dir / "b.ts"}
        options = make_options(temp_dir, kind=TargetKind.BRIDGE, entry=entry)
        engine = EsbuildEngine()
        args = engine.arguments(options)

        assert args[:2] == [f"extra={temp_dir / 'b.ts'}", f"preload={temp_dir / 'a.ts'}"]
        assert f"--outdir={temp_dir / 'dist'}" in args
        assert "--out-extension:.js=.cjs" in args
        assert engine.artifacts(options) == [temp_dir / "dist" / "extra.cjs",
                                             temp_dir / "dist" / "preload.cjs"]

    def test_diagnostic_extraction(self):
        engine = EsbuildEngine()
        line = 'X [ERROR] Could not resolve "missing-module"'
        assert engine.is_error_line(line)
        assert engine.diagnostic(line) == 'Could not resolve "missing-module"'
        assert not engine.is_error_line("[watch] build finished")


@pytest.mark.unit
class TestEsbuildProcess:
    """Test cases running esbuild stand-ins."""

    @pytest.mark.asyncio
    async def test_build_failure_carries_diagnostics(self, temp_dir):
        engine = EsbuildEngine(fake_tool("""
            import sys
            print('X [ERROR] Could not resolve "left-pad"', file=sys.stderr, flush=True)
            sys.exit(1)
        """))
        with pytest.raises(BuildError) as exc_info:
            await engine.build(make_options(temp_dir))

        assert exc_info.value.diagnostics == ['Could not resolve "left-pad"']
        assert exc_info.value.exit_code == 1

    @pytest.mark.asyncio
    async def test_build_success_returns_artifacts(self, temp_dir):
        engine = EsbuildEngine(fake_tool("print('done', flush=True)"))
        artifacts = await engine.build(make_options(temp_dir))
        assert artifacts == [temp_dir / "dist" / "index.cjs"]

    @pytest.mark.asyncio
    async def test_missing_command(self, temp_dir):
        engine = EsbuildEngine([str(temp_dir / "no-such-esbuild")])
        with pytest.raises(BuildError) as exc_info:
            await engine.build(make_options(temp_dir))
        assert "failed to start" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_watch_events(self, temp_dir):
        engine = EsbuildEngine(fake_tool("""
            import time
            print("[watch] build finished, watching for changes...", flush=True)
            print('[watch] build started (change: "src/index.ts")', flush=True)
            print('X [ERROR] Expected ";" but found "}"', flush=True)
            print("[watch] build finished", flush=True)
            time.sleep(30)
        """))
        (temp_dir / "src").mkdir()
        (temp_dir / "src" / "index.ts").write_text("")
        session = WatchSession("host")
        await engine.watch(make_options(temp_dir), session)

        events = []

        async def collect():
            async for event in session:
                events.append(event)
                if len(events) == 6:
                    break

        try:
            await asyncio.wait_for(collect(), 10)
            await session.wait_ready(1)
        finally:
            await session.cancel()

        assert [e.type for e in events] == [
            WatchEventType.BUNDLE_START,
            WatchEventType.BUNDLE_END,
            WatchEventType.FILE_CHANGED,
            WatchEventType.BUNDLE_START,
            WatchEventType.ERROR,
            WatchEventType.BUNDLE_END,
        ]
        assert events[2].path == temp_dir / "src" / "index.ts"
        assert events[2].change is ChangeKind.UPDATED
        assert events[4].cause.diagnostics == ['Expected ";" but found "}"']
        assert session.closed

    @pytest.mark.asyncio
    async def test_watch_process_exit_fails_session(self, temp_dir):
        engine = EsbuildEngine(fake_tool("import sys; sys.exit(2)"))
        session = WatchSession("host")
        await engine.watch(make_options(temp_dir), session)

        with pytest.raises(BuildError) as exc_info:
            await session.wait_ready(10)
        assert exc_info.value.exit_code == 2
        assert session.failure is exc_info.value


@pytest.mark.unit
class TestVite:
    """Test cases for the vite engine."""

    def test_config_rendering(self, temp_dir):
        options = make_options(temp_dir, kind=TargetKind.UI, mode="production",
                               entry={"index": temp_dir / "index.html"})
        path = ViteEngine().write_config(options)

        assert path == temp_dir / ".triforge" / "config" / "vite.main.config.mjs"
        source = path.read_text()
        assert 'import { loadConfigFromFile, mergeConfig } from "vite";' in source
        assert '"outDir": ' + json.dumps(str(temp_dir / "dist")) in source
        assert '"minify": true' in source
        assert '"base": "./"' in source
        assert '"electron"' in source
        assert '"triforge", "@triforge"' in source
        assert '"index": ' + json.dumps(str(temp_dir / "index.html")) in source
        assert "external: isExternal" in source

    @pytest.mark.asyncio
    async def test_dev_server_url(self, temp_dir):
        engine = ViteEngine(fake_tool("""
            import time
            print("  VITE v5.0.0  ready in 120 ms", flush=True)
            print("  Local:   \\x1b[36mhttp://localhost:5173/\\x1b[39m", flush=True)
            time.sleep(30)
        """))
        options = make_options(temp_dir, kind=TargetKind.UI, entry=temp_dir / "index.html")
        session = WatchSession("ui:main")
        await engine.watch(options, session)
        try:
            await session.wait_ready(10)
        finally:
            await session.cancel()

        assert session.url == "http://localhost:5173/"


@pytest.mark.unit
def test_strip_ansi():
    assert strip_ansi("\x1b[1m\x1b[31mred\x1b[0m") == "red"


@pytest.mark.unit
def test_change_kind_of_rebuilt_path(temp_dir):
    source = temp_dir / "added.ts"
    source.write_text("export {};\n")
    # esbuild does not tell new files apart from edited ones
    assert _change_kind(source) is ChangeKind.UPDATED
    source.unlink()
    assert _change_kind(source) is ChangeKind.DELETED
