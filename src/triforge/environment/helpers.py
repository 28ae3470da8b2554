"""
Virtual helper modules.

Two small modules are synthesized for every bundled target and resolved by
the bundler through aliases:

* ``triforge/paths/helper`` exports the output location of every target
  relative to the Host output directory (UI entries carry ``url`` and ``dir``);
* ``triforge/utils/helper`` exports the running ``mode`` and the ``process``
  kind of the importing target.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from ..models.targets import TargetDescriptor, TargetKind
from .composer import normalize_path

logger = logging.getLogger(__name__)

PATHS_HELPER = "triforge/paths/helper"
UTILS_HELPER = "triforge/utils/helper"

# Directory under the project root that holds generated helper modules.
GENERATED_DIR_NAME = ".triforge"


def _relative(location: Path, base: Path) -> str:
    return normalize_path(os.path.relpath(location, base))


def render_paths_helper(
    targets: Iterable[TargetDescriptor],
    mode: str,
    ui_urls: Optional[Mapping[str, str]] = None,
) -> str:
    """Render the source of the paths helper module."""
    ui_urls = ui_urls or {}
    targets = list(targets)
    host = next((t for t in targets if t.kind is TargetKind.HOST), None)
    if host is None:
        raise ValueError("paths helper requires the Host target")
    base = host.output_path

    bridges = {
        t.id: _relative(t.output_path, base)
        for t in sorted(targets, key=lambda t: t.id)
        if t.kind is TargetKind.BRIDGE
    }
    uis = {}
    for t in sorted(targets, key=lambda t: t.id):
        if t.kind is not TargetKind.UI:
            continue
        url = ui_urls.get(t.id) if mode == "development" else None
        uis[t.id] = {"url": url, "dir": _relative(t.output_path, base)}

    lines = [
        f"export const hostDir = {json.dumps(_relative(host.output_path, base))};",
        f"export const bridges = {json.dumps(bridges, indent=2)};",
        f"export const uis = {json.dumps(uis, indent=2)};",
        "export default { hostDir, bridges, uis };",
    ]
    return "\n".join(lines) + "\n"


def render_utils_helper(target: TargetDescriptor, mode: str) -> str:
    """Render the source of the utils helper module."""
    lines = [
        f"export const mode = {json.dumps(mode)};",
        f"export const process = {json.dumps(target.kind.value)};",
        "export default { mode, process };",
    ]
    return "\n".join(lines) + "\n"


def write_helper_modules(
    target: TargetDescriptor,
    targets: Iterable[TargetDescriptor],
    mode: str,
    project_root: Path,
    ui_urls: Optional[Mapping[str, str]] = None,
) -> Dict[str, Path]:
    """
    Write both helper modules for ``target`` and return the alias table.

    Returns:
        Mapping of virtual module name to the generated file
    """
    directory = (
        Path(project_root) / GENERATED_DIR_NAME / "helpers" / f"{target.kind.value}-{target.id}"
    )
    directory.mkdir(parents=True, exist_ok=True)

    paths_file = directory / "paths-helper.mjs"
    utils_file = directory / "utils-helper.mjs"
    paths_file.write_text(render_paths_helper(targets, mode, ui_urls), encoding="utf-8")
    utils_file.write_text(render_utils_helper(target, mode), encoding="utf-8")
    logger.debug(f"Wrote helper modules for {target.label} to {directory}")

    return {PATHS_HELPER: paths_file, UTILS_HELPER: utils_file}
