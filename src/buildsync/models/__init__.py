"""
Data models for the buildsync package.

Configuration Models:
- Build tool invocation, project layout, package copy entries, importer

Runtime Models:
- Build tool information and resolved output artifacts (cycle-scoped)

Result Models:
- The outcome of a copy cycle
"""

from .config import (
    AppConfig,
    BuildToolConfig,
    CopyMode,
    ImporterConfig,
    PackageCopyEntry,
    ProjectConfig,
    RunContextKind,
    SyncSettings,
)
from .results import CycleResult
from .runtime import (
    CYCLE_INFO_KEYS,
    EXECUTION_ROOT_KEY,
    OUTPUT_ROOT_KEY,
    WORKSPACE_ROOT_KEY,
    BuildInfo,
    OutputArtifact,
    normalize_separators,
)

__all__ = [
    # Configuration
    "AppConfig",
    "BuildToolConfig",
    "CopyMode",
    "ImporterConfig",
    "PackageCopyEntry",
    "ProjectConfig",
    "RunContextKind",
    "SyncSettings",
    # Runtime
    "CYCLE_INFO_KEYS",
    "EXECUTION_ROOT_KEY",
    "OUTPUT_ROOT_KEY",
    "WORKSPACE_ROOT_KEY",
    "BuildInfo",
    "OutputArtifact",
    "normalize_separators",
    # Results
    "CycleResult",
]
