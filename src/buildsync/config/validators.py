"""
Configuration validation utilities.

This module turns the raw TOML sections into validated configuration
objects. Relative paths are anchored at the configuration file's directory.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.config import (
    AppConfig,
    BuildToolConfig,
    CopyMode,
    ImporterConfig,
    PackageCopyEntry,
    ProjectConfig,
    RunContextKind,
    SyncSettings,
)
from ..validation import (
    ValidationError,
    validate_bool,
    validate_enum_choice,
    validate_output_pattern,
    validate_positive_float,
    validate_positive_integer,
    validate_string_list,
)

logger = logging.getLogger(__name__)


def _optional_path(value: Any, base_dir: Path, field_name: str) -> Optional[Path]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string path", field_name=field_name, value=value)
    path = Path(value).expanduser()
    return path if path.is_absolute() else (base_dir / path)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValidationError(f"[{name}] must be a table", field_name=name, value=section)
    return section


def validate_build_tool_config(build_tool_data: Dict[str, Any], base_dir: Path) -> BuildToolConfig:
    """
    Validate the `[build_tool]` section.

    Raises:
        ValidationError: If validation fails
    """
    executable = build_tool_data.get("executable", "bazel")
    if not isinstance(executable, str) or not executable.strip():
        raise ValidationError(
            "build_tool.executable must be a non-empty string",
            field_name="build_tool.executable",
            value=executable,
        )

    return BuildToolConfig(
        executable=executable.strip(),
        workspace_dir=_optional_path(
            build_tool_data.get("workspace_dir", "."), base_dir, "build_tool.workspace_dir"
        ),
        startup_args=validate_string_list(
            build_tool_data.get("startup_args", []), field_name="build_tool.startup_args"
        ),
        build_args=validate_string_list(
            build_tool_data.get("build_args", []), field_name="build_tool.build_args"
        ),
    )


def validate_project_config(project_data: Dict[str, Any], base_dir: Path) -> ProjectConfig:
    """
    Validate the `[project]` section.

    Raises:
        ValidationError: If validation fails
    """
    root = _optional_path(project_data.get("root", "."), base_dir, "project.root") or base_dir

    packages_dir = project_data.get("packages_dir", "Packages")
    if not isinstance(packages_dir, str) or not packages_dir.strip():
        raise ValidationError(
            "project.packages_dir must be a non-empty string",
            field_name="project.packages_dir",
            value=packages_dir,
        )

    context = validate_enum_choice(
        project_data.get("context", RunContextKind.EDITOR.value),
        valid_choices=[kind.value for kind in RunContextKind],
        field_name="project.context",
    )

    return ProjectConfig(
        root=root,
        packages_dir=packages_dir.strip().strip("/"),
        root_override=_optional_path(
            project_data.get("root_override"), base_dir, "project.root_override"
        ),
        context=RunContextKind(context),
    )


def validate_packages_config(packages_data: Any) -> List[PackageCopyEntry]:
    """
    Validate the ordered `[[packages]]` array.

    Entries with an empty label are kept (they are skipped at copy time) so
    the configured order and indices stay stable.

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(packages_data, list):
        raise ValidationError(
            "packages must be an array of tables ([[packages]])",
            field_name="packages",
            value=packages_data,
        )

    entries = []
    for i, package_data in enumerate(packages_data):
        if not isinstance(package_data, dict):
            raise ValidationError(
                f"packages[{i}] must be a table", field_name=f"packages[{i}]", value=package_data
            )

        label = package_data.get("label", "")
        if not isinstance(label, str):
            raise ValidationError(
                f"packages[{i}].label must be a string", field_name=f"packages[{i}].label", value=label
            )
        if not label.strip():
            logger.warning(f"packages[{i}] has an empty label and will be skipped")

        output_path = validate_output_pattern(
            package_data.get("output_path", ""), field_name=f"packages[{i}].output_path"
        )

        mode = validate_enum_choice(
            package_data.get("mode", CopyMode.DEFAULT.value),
            valid_choices=[mode.value for mode in CopyMode],
            field_name=f"packages[{i}].mode",
        )

        entries.append(
            PackageCopyEntry(label=label.strip(), output_path=output_path, mode=CopyMode(mode))
        )

    return entries


def validate_sync_settings(sync_data: Dict[str, Any], packages_data: Any, base_dir: Path) -> SyncSettings:
    """
    Validate the `[sync]` section together with the package list.

    Raises:
        ValidationError: If validation fails
    """
    default_output_path = validate_output_pattern(
        sync_data.get("default_output_path", ""), field_name="sync.default_output_path"
    )
    packages = validate_packages_config(packages_data)

    for i, entry in enumerate(packages):
        if not entry.is_empty and not (entry.output_path or default_output_path):
            raise ValidationError(
                f"packages[{i}] has no output_path and sync.default_output_path is empty",
                field_name=f"packages[{i}].output_path",
            )

    return SyncSettings(
        default_output_path=default_output_path,
        packages=packages,
        build_on_start=validate_bool(
            sync_data.get("build_on_start", True), field_name="sync.build_on_start"
        ),
        watch_on_start=validate_bool(
            sync_data.get("watch_on_start", False), field_name="sync.watch_on_start"
        ),
        copy_on_change=validate_bool(
            sync_data.get("copy_on_change", False), field_name="sync.copy_on_change"
        ),
        state_file=_optional_path(
            sync_data.get("state_file", ".buildsync/last_copied.json"), base_dir, "sync.state_file"
        ),
    )


def validate_importer_config(importer_data: Dict[str, Any]) -> ImporterConfig:
    """
    Validate the `[importer]` section.

    Raises:
        ValidationError: If validation fails
    """
    return ImporterConfig(
        command=validate_string_list(importer_data.get("command", []), field_name="importer.command"),
        busy_exit_code=validate_positive_integer(
            importer_data.get("busy_exit_code", 75),
            min_value=1,
            max_value=255,
            field_name="importer.busy_exit_code",
        ),
        retry_delay_seconds=validate_positive_float(
            importer_data.get("retry_delay_seconds", 2.0),
            min_value=0.0,
            max_value=3600.0,
            field_name="importer.retry_delay_seconds",
        ),
        max_attempts=validate_positive_integer(
            importer_data.get("max_attempts", 0),
            min_value=0,
            field_name="importer.max_attempts",
        ),
    )


def validate_app_config(data: Dict[str, Any], base_dir: Path) -> AppConfig:
    """
    Validate a whole configuration document.

    Args:
        data: Parsed TOML document
        base_dir: Directory that relative paths are anchored at

    Returns:
        Validated AppConfig instance

    Raises:
        ValidationError: If validation fails
    """
    try:
        return AppConfig(
            build_tool=validate_build_tool_config(_section(data, "build_tool"), base_dir),
            project=validate_project_config(_section(data, "project"), base_dir),
            sync=validate_sync_settings(_section(data, "sync"), data.get("packages", []), base_dir),
            importer=validate_importer_config(_section(data, "importer")),
        )
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
