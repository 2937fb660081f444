"""
Configuration data models.

This module contains the configuration-related data structures: the build
tool invocation settings, the consumer project layout, the package copy
entries and the import step settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class CopyMode(Enum):
    """Run contexts in which a package copy entry is active."""
    DEFAULT = "default"
    EDITOR_ONLY = "editor_only"
    STANDALONE_ONLY = "standalone_only"


class RunContextKind(Enum):
    """The context the consumer project is currently running in."""
    EDITOR = "editor"
    STANDALONE = "standalone"


@dataclass
class PackageCopyEntry:
    """
    One configured package whose build outputs are copied into the project.
    """

    # Build tool label naming the target, e.g. "//lib/foo:foo".
    label: str
    # Output path template; empty means the configured default pattern.
    output_path: str = ""
    mode: CopyMode = CopyMode.DEFAULT

    @property
    def is_empty(self) -> bool:
        return not self.label.strip()

    def applies_to(self, context: RunContextKind) -> bool:
        """Return whether this entry should be copied in ``context``."""
        if context is RunContextKind.EDITOR:
            return self.mode is not CopyMode.STANDALONE_ONLY
        return self.mode is not CopyMode.EDITOR_ONLY


@dataclass
class BuildToolConfig:
    """
    How the external build tool is invoked, loaded from `[build_tool]`.
    """

    executable: str = "bazel"
    # Directory the build tool runs in (the workspace).
    workspace_dir: Optional[Path] = None
    # Arguments placed before the command, e.g. ["--output_base=/tmp/ob"].
    startup_args: List[str] = field(default_factory=list)
    # Extra arguments appended to every build command.
    build_args: List[str] = field(default_factory=list)


@dataclass
class ProjectConfig:
    """
    Layout of the consumer project receiving the artifacts, loaded from `[project]`.
    """

    root: Path
    # Directory (relative to root) holding installed packages and manifest.json.
    packages_dir: str = "Packages"
    # Alternative root that destinations are re-anchored at, if any.
    root_override: Optional[Path] = None
    context: RunContextKind = RunContextKind.EDITOR


@dataclass
class SyncSettings:
    """
    Copy behaviour and the ordered package list, loaded from `[sync]` and `[[packages]]`.
    """

    default_output_path: str = ""
    packages: List[PackageCopyEntry] = field(default_factory=list)
    build_on_start: bool = True
    watch_on_start: bool = False
    # Request a copy cycle when a watched output directory changes.
    copy_on_change: bool = False
    # Where the last cycle's written paths are persisted; None disables it.
    state_file: Optional[Path] = None

    def pattern_for(self, entry: PackageCopyEntry) -> str:
        return entry.output_path or self.default_output_path

    def labels(self) -> List[str]:
        """All non-empty labels, in configuration order."""
        return [entry.label for entry in self.packages if not entry.is_empty]


@dataclass
class ImporterConfig:
    """
    The consuming import step, loaded from `[importer]`.
    """

    # Command run with the written paths appended; empty means log only.
    command: List[str] = field(default_factory=list)
    # Exit code with which the command reports that it is busy.
    busy_exit_code: int = 75
    retry_delay_seconds: float = 2.0
    # 0 retries forever.
    max_attempts: int = 0


@dataclass
class AppConfig:
    """
    The main application configuration object.
    """

    build_tool: BuildToolConfig
    project: ProjectConfig
    sync: SyncSettings
    importer: ImporterConfig
    config_path: Optional[Path] = None
