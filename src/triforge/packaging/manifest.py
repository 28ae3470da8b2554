"""
Manifest merging for the packaged application.

The shipped ``app/package.json`` starts from the project root manifest. The
dependencies of every target are folded into it according to merge rules:
``true`` merges everything, ``false`` nothing, and a table with ``include``
and/or ``exclude`` glob lists filters by package name.
"""

import copy
import json
import logging
import os
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

from ..classification import RUNTIME_MODULE
from ..environment import normalize_path
from ..models.config import MergeRule, PackRules
from ..models.targets import APP_DIR_NAME, TargetDescriptor
from ..validation.exceptions import PackagingError

logger = logging.getLogger(__name__)

POSTINSTALL_SCRIPT = "electron-builder install-app-deps"


def filter_dependencies(dependencies: Mapping[str, str], rule: MergeRule) -> Dict[str, str]:
    """
    Apply one merge rule to a dependency table.

    Args:
        dependencies: Package name to version range
        rule: ``True``, ``False`` or ``{"include": [...], "exclude": [...]}``

    Returns:
        The selected dependencies, in their original order
    """
    if rule is True:
        return dict(dependencies)
    if rule is False or rule is None:
        return {}

    include = rule.get("include")
    exclude = rule.get("exclude") or []
    selected = {}
    for name, version in dependencies.items():
        if include is not None and not any(fnmatchcase(name, pattern) for pattern in include):
            continue
        if any(fnmatchcase(name, pattern) for pattern in exclude):
            continue
        selected[name] = version
    return selected


def merge_manifests(
    root_manifest: Mapping[str, Any],
    targets: Iterable[TargetDescriptor],
    project_rules: PackRules,
    host: TargetDescriptor,
    app_dir: Path,
) -> Dict[str, Any]:
    """
    Build the manifest of the packaged application.

    Target dependencies are applied in order on top of the root manifest, so
    a later target's version wins over an earlier one and over the root.
    ``main`` points at the Host bundle relative to ``app_dir`` and ``scripts``
    is replaced by the native dependency rebuild hook.

    Raises:
        PackagingError: If the desktop runtime ends up as a runtime dependency
    """
    manifest = copy.deepcopy(dict(root_manifest))
    dependencies = dict(manifest.get("dependencies") or {})
    dev_dependencies = dict(manifest.get("devDependencies") or {})

    for target in targets:
        rules = target.pack or project_rules
        merged = filter_dependencies(target.runtime_dependencies, rules.merge_dependencies)
        merged_dev = filter_dependencies(target.dev_dependencies, rules.merge_dev_dependencies)
        if merged or merged_dev:
            logger.debug(
                f"Merging {len(merged)} dependencies and {len(merged_dev)} dev dependencies "
                f"from {target.label}"
            )
        dependencies.update(merged)
        dev_dependencies.update(merged_dev)

    if RUNTIME_MODULE in dependencies:
        raise PackagingError(
            f'"{RUNTIME_MODULE}" must not be a runtime dependency of the packaged app, '
            f"move it to devDependencies"
        )

    manifest["main"] = normalize_path(os.path.relpath(host.bundle_file, app_dir))
    manifest["dependencies"] = dependencies
    if dev_dependencies:
        manifest["devDependencies"] = dev_dependencies
    else:
        manifest.pop("devDependencies", None)
    manifest["scripts"] = {"postinstall": POSTINSTALL_SCRIPT}
    return manifest


def write_manifest(manifest: Mapping[str, Any], project_root: Path) -> Path:
    """Write the merged manifest to ``<root>/app/package.json``."""
    app_dir = Path(project_root) / APP_DIR_NAME
    app_dir.mkdir(parents=True, exist_ok=True)
    path = app_dir / "package.json"
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Wrote {path}")
    return path
