"""
Environment composition.

Computes the flattened set of environment variables visible to a target at
build time (substituted into the bundle) and at run time (passed to the Host
process). Three layers are applied, later layers winning:

1. the project base environment (project env files plus ROOT_DIR),
2. the target's own env files,
3. computed values: NODE_ENV and the cross references to every initialized
   target's root and output directory (or dev-server URL).
"""

import json
import re
from typing import Dict, Iterable, Mapping, Optional

from ..models.targets import TargetDescriptor, TargetKind

EnvironmentSet = Dict[str, str]

_KIND_ORDER = {TargetKind.HOST: 0, TargetKind.BRIDGE: 1, TargetKind.UI: 2}


def normalize_path(location) -> str:
    """Render a path with forward slashes on every platform."""
    return str(location).replace("\\", "/")


def env_id(target_id: str) -> str:
    """Turn a target id into an environment variable fragment."""
    return re.sub(r"[^A-Za-z0-9]", "_", target_id).upper()


def _reference(
    sibling: TargetDescriptor, key: str, mode: str, ui_urls: Mapping[str, str]
) -> EnvironmentSet:
    refs = {f"{key}_ROOT": normalize_path(sibling.source_root)}
    if sibling.kind is TargetKind.UI and mode == "development":
        url = ui_urls.get(sibling.id)
        if url:
            refs[f"{key}_URL"] = url
    else:
        refs[f"{key}_DIR"] = normalize_path(sibling.output_path)
    return refs


def compose(
    target: TargetDescriptor,
    all_targets: Iterable[TargetDescriptor],
    project_env: Mapping[str, str],
    mode: str,
    target_env: Optional[Mapping[str, str]] = None,
    ui_urls: Optional[Mapping[str, str]] = None,
) -> EnvironmentSet:
    """
    Compose the environment of ``target``.

    Args:
        target: The target being built or run
        all_targets: Every initialized target, the Host included; order does not matter
        project_env: Project base environment
        mode: Running mode, exported as NODE_ENV
        target_env: Variables from the target's own env files
        ui_urls: Dev-server URL per UI id, known once the servers are listening

    Returns:
        Mapping of variable name to value
    """
    ui_urls = ui_urls or {}
    siblings = sorted(
        set(all_targets) | {target}, key=lambda t: (_KIND_ORDER[t.kind], t.id)
    )
    counts: Dict[TargetKind, int] = {}
    for sibling in siblings:
        counts[sibling.kind] = counts.get(sibling.kind, 0) + 1

    env: EnvironmentSet = dict(project_env)
    env.update(target_env or {})
    env["NODE_ENV"] = mode

    for sibling in siblings:
        if sibling.kind is TargetKind.HOST:
            env["HOST_ROOT"] = normalize_path(sibling.source_root)
            env["HOST_DIR"] = normalize_path(sibling.output_path)
            continue
        if sibling == target:
            continue
        prefix = sibling.kind.value.upper()
        env.update(_reference(sibling, f"{prefix}_{env_id(sibling.id)}", mode, ui_urls))
        if counts[sibling.kind] == 1:
            env.update(_reference(sibling, prefix, mode, ui_urls))

    if target.kind is not TargetKind.HOST:
        # A target always sees its own output directory, even a dev-served UI
        prefix = target.kind.value.upper()
        root = normalize_path(target.source_root)
        output = normalize_path(target.output_path)
        for key in (f"{prefix}_{env_id(target.id)}", prefix):
            env[f"{key}_ROOT"] = root
            env[f"{key}_DIR"] = output

    return env


def to_defines(env: Mapping[str, str]) -> Dict[str, str]:
    """
    Build the textual substitution table for the bundler.

    Every ``process.env.KEY`` reference in source is replaced by the JSON
    string literal of its value, so mode checks fold to constants.
    """
    return {f"process.env.{key}": json.dumps(value) for key, value in env.items()}
