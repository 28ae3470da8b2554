"""
Project configuration validation.

Turns the raw ``triforge.toml`` mapping into a validated ProjectConfig.
Bridge and UI targets may be given as a single table or as an array of
tables; their ids must be unique within their own kind.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.config import (
    MODES,
    RESTART_POLICIES,
    DevConfig,
    PackRules,
    ProjectConfig,
    TargetConfig,
    ToolsConfig,
)
from ..validation import (
    ValidationError,
    validate_enum_choice,
    validate_filter_pattern,
    validate_non_empty_string,
    validate_positive_float,
    validate_string_list,
    validate_target_id,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST_PACKAGE = "host"


def validate_pack_rules(pack_data: Any, field_prefix: str) -> PackRules:
    """
    Validate a ``pack`` table.

    Raises:
        ValidationError: If the table or one of its rules is malformed
    """
    if not isinstance(pack_data, dict):
        raise ValidationError(f"{field_prefix} must be a table", field_name=field_prefix, value=pack_data)

    defaults = PackRules()
    return PackRules(
        merge_dependencies=validate_filter_pattern(
            pack_data.get("merge_dependencies", defaults.merge_dependencies),
            field_name=f"{field_prefix}.merge_dependencies",
        ),
        merge_dev_dependencies=validate_filter_pattern(
            pack_data.get("merge_dev_dependencies", defaults.merge_dev_dependencies),
            field_name=f"{field_prefix}.merge_dev_dependencies",
        ),
    )


def validate_entry(entry: Any, field_name: str):
    """Validate an entry: absent, a path string, or a table of name -> path."""
    if entry is None or isinstance(entry, str):
        if isinstance(entry, str):
            validate_non_empty_string(entry, field_name)
        return entry

    if isinstance(entry, dict):
        if not entry:
            raise ValidationError(f"{field_name} must not be an empty table", field_name=field_name, value=entry)
        return {
            str(name): validate_non_empty_string(path, f"{field_name}.{name}")
            for name, path in entry.items()
        }

    raise ValidationError(
        f"{field_name} must be a string or a table of strings",
        field_name=field_name,
        value=entry,
    )


def validate_target_config(
    target_data: Any,
    field_prefix: str,
    require_id: bool,
    existing_ids: Optional[List[str]] = None,
    default_package: Optional[str] = None,
) -> TargetConfig:
    """
    Validate one target table.

    Args:
        target_data: Raw table from the configuration file
        field_prefix: Dotted location used in error messages (e.g. ``bridges[1]``)
        require_id: Bridge and UI targets must carry an id
        existing_ids: Ids of previously validated targets of the same kind
        default_package: Package used when the table omits one

    Returns:
        Validated TargetConfig

    Raises:
        ValidationError: If a field is missing or malformed
        DuplicateTargetError: If the id is already used by the same kind
    """
    if not isinstance(target_data, dict):
        raise ValidationError(f"{field_prefix} must be a table", field_name=field_prefix, value=target_data)

    package = target_data.get("package", default_package)
    if package is None:
        raise ValidationError(f"{field_prefix}.package is required", field_name=f"{field_prefix}.package")
    package = validate_non_empty_string(package, f"{field_prefix}.package")

    target_id = None
    if require_id:
        target_id = validate_target_id(
            target_data.get("id"), existing_ids=existing_ids, field_name=f"{field_prefix}.id"
        )

    pack = None
    if "pack" in target_data:
        pack = validate_pack_rules(target_data["pack"], f"{field_prefix}.pack")

    return TargetConfig(
        package=package,
        entry=validate_entry(target_data.get("entry"), f"{field_prefix}.entry"),
        id=target_id,
        pack=pack,
    )


def _validate_target_list(raw: Any, section: str) -> List[TargetConfig]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValidationError(f"{section} must be a table or an array of tables", field_name=section, value=raw)

    targets: List[TargetConfig] = []
    for i, item in enumerate(raw):
        targets.append(
            validate_target_config(
                item,
                field_prefix=f"{section}[{i}]",
                require_id=True,
                existing_ids=[t.id for t in targets],
            )
        )
    return targets


def validate_dev_config(dev_data: Any) -> DevConfig:
    if not isinstance(dev_data, dict):
        raise ValidationError("dev must be a table", field_name="dev", value=dev_data)
    defaults = DevConfig()
    return DevConfig(
        restart_policy=validate_enum_choice(
            dev_data.get("restart_policy", defaults.restart_policy),
            choices=list(RESTART_POLICIES),
            field_name="dev.restart_policy",
        ),
        restart_timeout=validate_positive_float(
            dev_data.get("restart_timeout", defaults.restart_timeout),
            min_value=0.1,
            max_value=120.0,
            field_name="dev.restart_timeout",
        ),
    )


def validate_tools_config(tools_data: Any) -> ToolsConfig:
    if not isinstance(tools_data, dict):
        raise ValidationError("tools must be a table", field_name="tools", value=tools_data)
    defaults = ToolsConfig()
    return ToolsConfig(
        runtime=validate_string_list(tools_data.get("runtime", defaults.runtime), "tools.runtime", allow_empty=False),
        esbuild=validate_string_list(tools_data.get("esbuild", defaults.esbuild), "tools.esbuild", allow_empty=False),
        vite=validate_string_list(tools_data.get("vite", defaults.vite), "tools.vite", allow_empty=False),
        packager=validate_string_list(tools_data.get("packager", defaults.packager), "tools.packager", allow_empty=False),
    )


def validate_project_config(
    raw: Dict[str, Any],
    root: Path,
    mode_override: Optional[str] = None,
) -> ProjectConfig:
    """
    Validate and create a ProjectConfig from raw configuration data.

    Args:
        raw: Parsed triforge.toml
        root: Project root directory
        mode_override: Mode chosen on the command line; wins over the file

    Returns:
        Validated ProjectConfig instance

    Raises:
        ValidationError: If validation fails
        DuplicateTargetError: If two Bridge or two UI targets share an id
    """
    if not isinstance(raw, dict):
        raise ValidationError("project configuration must be a table")

    mode = validate_enum_choice(
        mode_override or raw.get("mode", "development"),
        choices=list(MODES),
        field_name="mode",
    )

    host = validate_target_config(
        raw.get("host", {}),
        field_prefix="host",
        require_id=False,
        default_package=DEFAULT_HOST_PACKAGE,
    )
    bridges = _validate_target_list(raw.get("bridges"), "bridges")
    uis = _validate_target_list(raw.get("uis"), "uis")

    builder = raw.get("builder", {})
    if not isinstance(builder, dict):
        raise ValidationError("builder must be a table", field_name="builder", value=builder)

    config = ProjectConfig(
        root=Path(root).resolve(),
        mode=mode,
        host=host,
        bridges=bridges,
        uis=uis,
        resources=validate_string_list(raw.get("resources", ["resources"]), "resources"),
        builder=builder,
        dev=validate_dev_config(raw.get("dev", {})),
        tools=validate_tools_config(raw.get("tools", {})),
        pack=validate_pack_rules(raw.get("pack", {}), "pack"),
    )

    logger.debug(
        f"Validated project configuration: mode={mode}, "
        f"{len(bridges)} bridge(s), {len(uis)} ui target(s)"
    )
    return config
