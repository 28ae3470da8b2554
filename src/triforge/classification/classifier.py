"""
External module classification.

Decides, for every import the bundler encounters, whether the import is
bundled into the output or left as a runtime require. The decision depends
only on the import string and the target's ExternalSet.
"""

import posixpath
from typing import Any, FrozenSet, Iterable, Mapping, Optional

from ..models.targets import TargetDescriptor, TargetKind

ExternalSet = FrozenSet[str]

# The desktop runtime is always provided by the host process.
RUNTIME_MODULE = "electron"

# Imports under these namespaces resolve to generated helper modules.
INTERNAL_NAMESPACES = ("triforge", "@triforge")

# Node.js built-in modules, as listed by ``require("module").builtinModules``.
NODE_BUILTIN_MODULES: FrozenSet[str] = frozenset(
    [
        "assert", "assert/strict", "async_hooks", "buffer", "child_process",
        "cluster", "console", "constants", "crypto", "dgram",
        "diagnostics_channel", "dns", "dns/promises", "domain", "events", "fs",
        "fs/promises", "http", "http2", "https", "inspector",
        "inspector/promises", "module", "net", "os", "path", "path/posix",
        "path/win32", "perf_hooks", "process", "punycode", "querystring",
        "readline", "readline/promises", "repl", "stream", "stream/consumers",
        "stream/promises", "stream/web", "string_decoder", "sys", "timers",
        "timers/promises", "tls", "trace_events", "tty", "url", "util",
        "util/types", "v8", "vm", "wasi", "worker_threads", "zlib",
    ]
)


def is_internal(source: str) -> bool:
    """True for imports of the generated helper modules, which are always bundled."""
    return any(
        source == namespace or source.startswith(f"{namespace}/")
        for namespace in INTERNAL_NAMESPACES
    )


def build_external_set(
    target: TargetDescriptor, root_manifest: Optional[Mapping[str, Any]] = None
) -> ExternalSet:
    """
    Compute the modules left external for ``target``.

    The set holds the desktop runtime, the target's own runtime dependencies
    (Host and Bridge only; UI targets bundle theirs), the dependencies of the
    project root manifest, and every Node.js built-in in both its bare and
    ``node:`` form. Packages under the internal namespaces are never in the
    set, even when a manifest lists them.
    """
    externals = {RUNTIME_MODULE}
    if target.kind is not TargetKind.UI:
        externals.update(target.runtime_dependencies)
    if root_manifest:
        externals.update((root_manifest.get("dependencies") or {}).keys())
    for name in NODE_BUILTIN_MODULES:
        externals.add(name)
        externals.add(f"node:{name}")
    return frozenset(name for name in externals if not is_internal(name))


def module_name(source: str) -> str:
    """
    Extract the package name from an import string.

    ``@scope/name/sub`` gives ``@scope/name``; ``name/sub`` gives ``name``.
    Built-ins are cut the same way, so ``node:fs/promises`` gives ``node:fs``;
    ``is_external`` matches the full import string before calling this.
    """
    source = source.replace("\\", "/")
    parts = [part for part in source.split("/") if part]
    if not parts:
        return source
    if parts[0].startswith("@") and len(parts) > 1:
        return f"{parts[0]}/{parts[1]}"
    return parts[0]


def _is_absolute(source: str) -> bool:
    if posixpath.isabs(source.replace("\\", "/")):
        return True
    # Windows drive letter, e.g. C:/project/file.js
    return len(source) > 2 and source[1] == ":" and source[2] in "/\\"


def is_external(source: str, importer: Optional[str], externals: Iterable[str]) -> bool:
    """
    Classify one import.

    Args:
        source: The import string as written
        importer: The importing file, ``None`` for the entry itself
        externals: The target's ExternalSet

    Returns:
        True if the import stays a runtime require, False if it is bundled
    """
    if importer is None:
        return False
    if _is_absolute(source) or source.startswith("."):
        return False
    if is_internal(source):
        return False

    normalized = source.replace("\\", "/")
    if normalized in externals:
        return True
    return module_name(normalized) in externals
