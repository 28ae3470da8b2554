"""
Target resolution.

Turns the configured package references of the Host, Bridge and UI targets
into immutable TargetDescriptors: source root, entry file(s), output path and
loaded manifest.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..config.loader import PACKAGE_JSON_NAME, load_package_json
from ..models.config import ProjectConfig, TargetConfig
from ..models.targets import HOST_ID, EntrySpec, TargetDescriptor, TargetKind, output_path
from ..validation import DuplicateTargetError, NoEntryFileError, PackageNotFoundError, ValidationError

logger = logging.getLogger(__name__)

NODE_MODULES = "node_modules"


def resolve_source_root(project_root: Path, package: str) -> Path:
    """
    Resolve a target's root directory.

    Tries, in order:
    1. ``package`` as a path relative to the project root;
    2. ``package`` as an installed package, looking for
       ``node_modules/<package>/package.json`` from the project root upwards.

    Args:
        project_root: Absolute project root
        package: Package name (``@scope/name`` allowed) or relative path

    Returns:
        Absolute path of the target's root directory

    Raises:
        PackageNotFoundError: If neither lookup succeeds
    """
    project_root = Path(project_root)

    relative_path = project_root / package
    if relative_path.is_dir():
        return relative_path.resolve()

    for directory in (project_root, *project_root.parents):
        manifest = directory / NODE_MODULES / package / PACKAGE_JSON_NAME
        if manifest.is_file():
            return manifest.parent.resolve()

    raise PackageNotFoundError(f"package '{package}' not found from {project_root}")


def resolve_entry(
    source_root: Path,
    configured_entry: Union[None, str, Mapping[str, str]],
    manifest: Mapping[str, Any],
) -> EntrySpec:
    """
    Resolve a target's entry file(s).

    The configured entry takes precedence; otherwise the manifest ``main``
    field is used.

    Raises:
        NoEntryFileError: If no entry is declared or a resolved file does not exist
    """
    entry = configured_entry if configured_entry else manifest.get("main")
    if not entry:
        raise NoEntryFileError(f"No entry file declared for {source_root}")

    if isinstance(entry, Mapping):
        resolved: Dict[str, Path] = {}
        for name, relative in entry.items():
            path = source_root / relative
            if not path.is_file():
                raise NoEntryFileError(f"entry '{name}' not found: {path}")
            resolved[name] = path
        return resolved

    path = source_root / entry
    if not path.is_file():
        raise NoEntryFileError(f"entry not found: {path}")
    return path


def build_descriptor(
    kind: TargetKind,
    target_config: TargetConfig,
    project: ProjectConfig,
) -> TargetDescriptor:
    """
    Build the descriptor of one target.

    Raises:
        ConfigurationError: If the package, manifest or entry cannot be resolved
    """
    target_id = HOST_ID if kind is TargetKind.HOST else target_config.id
    if not target_id:
        raise ValidationError(f"{kind.value} target for '{target_config.package}' has no id", field_name="id")

    source_root = resolve_source_root(project.root, target_config.package)
    manifest = load_package_json(source_root)
    entry = resolve_entry(source_root, target_config.entry, manifest)

    descriptor = TargetDescriptor(
        kind=kind,
        id=target_id,
        source_root=source_root,
        entry=entry,
        output_path=output_path(project.mode, kind, target_id, project.root, source_root),
        manifest=manifest,
        pack=target_config.pack,
    )
    logger.debug(f"Resolved {descriptor.label}: root={source_root}, output={descriptor.output_path}")
    return descriptor


def build_descriptors(
    kind: TargetKind,
    target_configs: List[TargetConfig],
    project: ProjectConfig,
) -> List[TargetDescriptor]:
    """
    Build descriptors for all targets of one kind, enforcing id uniqueness.

    Raises:
        DuplicateTargetError: If two targets of this kind share an id
    """
    descriptors: List[TargetDescriptor] = []
    seen: set = set()
    for target_config in target_configs:
        if target_config.id in seen:
            raise DuplicateTargetError(f"duplicate {kind.value} id '{target_config.id}'")
        seen.add(target_config.id)
        descriptors.append(build_descriptor(kind, target_config, project))
    return descriptors


def find_target(targets: List[TargetDescriptor], target_id: str) -> Optional[TargetDescriptor]:
    for target in targets:
        if target.id == target_id:
            return target
    return None
