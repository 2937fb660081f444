"""
Command-line interface for buildsync.

This module provides the main CLI entry point: it loads the configuration,
builds the supervisor and runs one of the subcommands

- ``copy``: run one copy cycle
- ``watch``: run the startup work and watch the build outputs until interrupted
- ``info``: print the build tool information a cycle uses
- ``outputs``: print where every enabled package's outputs would be copied
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..config import get_config, set_config_path
from ..models.config import AppConfig, RunContextKind
from ..models.runtime import CYCLE_INFO_KEYS, BuildInfo
from ..orchestration import SignalHandler, SyncSupervisor
from ..resolution import OutputPathResolver, PackageLocator
from ..validation import (
    ErrorSeverity,
    SyncError,
    ValidationError,
    handle_cli_error,
    handle_error,
    validate_enum_choice,
)

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildsync",
        description="Build packages with the build tool and copy their outputs into a project.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to the configuration file (default: ./buildsync.toml).",
    )
    parser.add_argument(
        "--context",
        type=str,
        default=None,
        help="Run context deciding which packages are copied: 'editor' or 'standalone'.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("copy", help="Build and copy every enabled package once.")
    subparsers.add_parser("watch", help="Watch the build output directories until interrupted.")
    subparsers.add_parser("info", help="Print the build tool information used by a copy cycle.")
    subparsers.add_parser("outputs", help="Print the resolved destination of every output.")
    return parser


async def run_copy(supervisor: SyncSupervisor, shutdown_requested: asyncio.Event) -> int:
    result = await supervisor.run_cycle()
    if result is None:
        return 1

    pending = supervisor.orchestrator.pending_import
    if pending is not None and not pending.done():
        logger.info("Waiting for the asset importer to accept the written files...")
        shutdown_wait = asyncio.create_task(shutdown_requested.wait())
        await asyncio.wait({pending, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED)
        shutdown_wait.cancel()

    for error in result.errors:
        logger.error(f"  {error}")
    return 0 if result.succeeded else 1


async def run_watch(supervisor: SyncSupervisor, shutdown_requested: asyncio.Event) -> int:
    await supervisor.initialize()
    if not supervisor.watch.is_active and not shutdown_requested.is_set():
        if not await supervisor.start_watch():
            return 1
    logger.info("Watching build outputs. Press Ctrl+C to stop.")
    await shutdown_requested.wait()
    return 0


async def run_info(supervisor: SyncSupervisor) -> int:
    values = await supervisor.driver.query_info(CYCLE_INFO_KEYS)
    for key in CYCLE_INFO_KEYS:
        print(f"{key}: {values.get(key, '')}")
    return 0


async def run_outputs(supervisor: SyncSupervisor) -> int:
    config = supervisor.config
    info = BuildInfo.from_mapping(await supervisor.driver.query_info(CYCLE_INFO_KEYS))
    resolver = OutputPathResolver(PackageLocator(config.project.root, config.project.packages_dir))

    exit_code = 0
    for entry in supervisor.orchestrator.enabled_entries():
        pattern = config.sync.pattern_for(entry)
        print(f"{entry.label}:")
        for raw_path in await supervisor.driver.query_outputs(entry.label):
            try:
                artifact = resolver.resolve(raw_path, pattern, info, config.project.root_override)
            except SyncError as e:
                print(f"  {raw_path} -> ERROR: {e}")
                exit_code = 1
                continue
            print(f"  {artifact.source_path} -> {artifact.destination_path}")
    return exit_code


async def run_command(command: str, config: AppConfig, context: Optional[RunContextKind]) -> int:
    supervisor = SyncSupervisor(config)
    if context is not None and not supervisor.enter_run_context(context):
        return 1

    shutdown_requested = asyncio.Event()
    signal_handler = SignalHandler(supervisor, shutdown_requested)
    signal_handler.setup_signal_handlers(asyncio.get_running_loop())
    try:
        if command == "copy":
            return await run_copy(supervisor, shutdown_requested)
        if command == "watch":
            return await run_watch(supervisor, shutdown_requested)
        if command == "info":
            return await run_info(supervisor)
        return await run_outputs(supervisor)
    except (SyncError, KeyError) as e:
        handle_error(e, f"'{command}' command", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
        return 1
    finally:
        await supervisor.teardown()
        signal_handler.cleanup_signal_handlers()


def main_cli(argv: Optional[List[str]] = None) -> None:
    """
    Main command-line interface for buildsync.

    Raises:
        SystemExit: With the command's exit status, or 1 on configuration errors
    """
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    context: Optional[RunContextKind] = None
    if args.context:
        try:
            context = RunContextKind(
                validate_enum_choice(
                    args.context,
                    [kind.value for kind in RunContextKind],
                    field_name="--context argument",
                )
            )
        except ValidationError as e:
            handle_cli_error(error=e, context="context argument validation", exit_code=2, logger=logger)

    if args.config is not None:
        set_config_path(args.config)

    try:
        app_config = get_config()
    except (OSError, ValueError, ValidationError) as e:
        handle_cli_error(
            error=e,
            context="configuration loading",
            exit_code=1,
            include_traceback=True,
            logger=logger,
        )

    logger.info(f"Running '{args.command}' with configuration {app_config.config_path}")
    sys.exit(asyncio.run(run_command(args.command, app_config, context)))
