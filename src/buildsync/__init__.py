"""
buildsync: build packages with an external build tool and copy their outputs
into a consumer project.

The package is organized into specialized modules:
- config: Configuration loading, validation and the change signal
- models: Data structures and type definitions
- validation: Error taxonomy, error handling and input validation
- executor: External process execution
- progress: Hierarchical, cancelable progress reporting
- driver: Build tool info, build and output queries
- resolution: Output path templates and package locations
- sync: Copying files into the project
- orchestration: Copy cycles, the supervisor and signal handling
- watch: Watching build output directories
- host: Contracts for the host UI and asset importer
- cli: Command-line interface

Usage:
    From command line:
        buildsync --config buildsync.toml copy

    Programmatically:
        from buildsync import SyncSupervisor, get_config
        supervisor = SyncSupervisor(get_config())
        result = await supervisor.run_cycle()
"""

# Main interfaces
from .config import clear_config_cache, config_changed, get_config, reload_config, set_config_path
from .orchestration import CopyOrchestrator, SyncSupervisor, get_supervisor
from .cli import main_cli

# Components
from .driver import BuildDriver, parse_progress_line
from .executor import ProcessRunner
from .progress import LoggingProgressHost, ProgressStatus, ProgressTracker
from .resolution import OutputPathResolver, PackageLocator
from .sync import SyncEngine
from .watch import WatchEngine

# Host contracts
from .host import AssetImporter, ProgressHost

# Model classes for external use
from .models import (
    AppConfig,
    BuildInfo,
    CopyMode,
    CycleResult,
    OutputArtifact,
    PackageCopyEntry,
    RunContextKind,
    SyncSettings,
)

# Errors
from .validation import (
    ImporterBusyError,
    PathResolutionError,
    ProcessExitError,
    ProcessSpawnError,
    SyncError,
    SyncIOError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    # Main interfaces
    "clear_config_cache",
    "config_changed",
    "get_config",
    "reload_config",
    "set_config_path",
    "CopyOrchestrator",
    "SyncSupervisor",
    "get_supervisor",
    "main_cli",
    # Components
    "BuildDriver",
    "parse_progress_line",
    "ProcessRunner",
    "LoggingProgressHost",
    "ProgressStatus",
    "ProgressTracker",
    "OutputPathResolver",
    "PackageLocator",
    "SyncEngine",
    "WatchEngine",
    # Host contracts
    "AssetImporter",
    "ProgressHost",
    # Models
    "AppConfig",
    "BuildInfo",
    "CopyMode",
    "CycleResult",
    "OutputArtifact",
    "PackageCopyEntry",
    "RunContextKind",
    "SyncSettings",
    # Errors
    "ImporterBusyError",
    "PathResolutionError",
    "ProcessExitError",
    "ProcessSpawnError",
    "SyncError",
    "SyncIOError",
    "ValidationError",
]
