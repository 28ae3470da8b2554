"""
Build execution: bundler engines, the build driver and watch sessions.
"""

from .driver import BuildDriver, default_engines
from .engines import BuildOptions, BundlerEngine, EsbuildEngine, ViteEngine, render_vite_config
from .watch import WatchSession

__all__ = [
    "BuildDriver",
    "default_engines",
    "BuildOptions",
    "BundlerEngine",
    "EsbuildEngine",
    "ViteEngine",
    "render_vite_config",
    "WatchSession",
]
