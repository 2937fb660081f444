"""
Long-lived owner of the copy and watch machinery.

The SyncSupervisor wires the build driver, copy orchestrator and watch engine
together for one configuration, runs the startup copy and watch session, and
rebuilds everything when the configuration changes.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from watchdog.observers import Observer

from ..config import config_changed, get_config
from ..driver import BuildDriver
from ..executor import ProcessRunner
from ..host import AssetImporter, create_importer
from ..models.config import AppConfig, RunContextKind
from ..models.results import CycleResult
from ..progress import LoggingProgressHost, ProgressTracker
from ..validation import ErrorSeverity, SyncError, ValidationError, handle_error
from ..watch import WatchEngine
from .copy_orchestrator import CopyOrchestrator
from .result_store import CycleResultStore

logger = logging.getLogger(__name__)


class SyncSupervisor:
    """
    Process-wide coordinator for copy cycles and the watch session.
    """

    def __init__(
        self,
        config: AppConfig,
        tracker: Optional[ProgressTracker] = None,
        importer: Optional[AssetImporter] = None,
        runner_factory: Callable[..., ProcessRunner] = ProcessRunner,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.tracker = tracker or ProgressTracker(LoggingProgressHost())
        self.runner_factory = runner_factory
        self._importer_override = importer

        self.config = config
        self.driver = BuildDriver.from_config(config.build_tool, self.tracker, runner_factory)
        self.orchestrator = CopyOrchestrator.from_config(
            config, self.driver, self.tracker, importer=importer or create_importer(config.importer)
        )
        self.watch = WatchEngine(
            self.driver,
            config.sync,
            self.tracker,
            observer_factory=observer_factory,
            on_change=self._on_output_changed,
        )

        self.initialized = False
        # Set once the startup copy has run, so re-initializing does not repeat it.
        self.initial_cycle_done = False
        self._cycle_task: Optional["asyncio.Task[Optional[CycleResult]]"] = None
        self._tasks: Set[asyncio.Task] = set()

    async def initialize(self) -> None:
        """
        Subscribe to configuration changes and run the configured startup work.
        """
        if self.initialized:
            logger.debug("Supervisor already initialized")
            return
        config_changed.connect(self._on_config_changed)
        self.initialized = True

        if self.config.sync.build_on_start and not self.initial_cycle_done:
            await self.run_cycle()
        if self.config.sync.watch_on_start:
            await self.start_watch()

    async def teardown(self) -> None:
        """Stop watching, cancel running work and unsubscribe."""
        config_changed.disconnect(self._on_config_changed)
        self.initialized = False
        self.watch.stop()

        cancelled = self.tracker.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} running operation(s)")
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.orchestrator.close()

    def request_cycle(self) -> "asyncio.Task[Optional[CycleResult]]":
        """
        Schedule a copy cycle; a request made while one is pending returns
        the pending one.
        """
        if self._cycle_task is not None and not self._cycle_task.done():
            logger.debug("Copy cycle already pending")
            return self._cycle_task

        task = asyncio.create_task(self._run_cycle())
        self._track(task)
        self._cycle_task = task
        return task

    async def run_cycle(self) -> Optional[CycleResult]:
        return await self.request_cycle()

    async def _run_cycle(self) -> Optional[CycleResult]:
        result = await self.orchestrator.run_cycle()
        if result is not None:
            self.initial_cycle_done = True
        return result

    async def start_watch(self) -> bool:
        """Start the watch session; failures are logged."""
        try:
            await self.watch.start()
        except (SyncError, OSError) as e:
            handle_error(e, "starting watch session", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
            return False
        return True

    def enter_run_context(self, kind: RunContextKind) -> bool:
        """
        Switch the run context that decides which packages are copied.

        Refused while a copy cycle is running, since the cycle's outputs would
        not match the new context.
        """
        if self.orchestrator.is_running:
            logger.error(
                f"Cannot enter the {kind.value} context while a copy cycle is running; "
                "wait for it to finish or cancel it"
            )
            return False
        self.orchestrator.context = kind
        logger.info(f"Entered the {kind.value} context")
        return True

    def _on_output_changed(self, directory: str, path: str) -> None:
        if not self.config.sync.copy_on_change:
            return
        if self._cycle_task is not None and not self._cycle_task.done():
            return
        logger.info(f"Build output changed in {directory}; requesting a copy cycle")
        self.request_cycle()

    def _on_config_changed(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Configuration changed outside the event loop; changes apply on next start")
            return
        task = loop.create_task(self._apply_config_change())
        self._track(task)

    async def _apply_config_change(self) -> None:
        try:
            new_config = get_config()
        except (OSError, ValueError, ValidationError) as e:
            handle_error(e, "applying configuration change", severity=ErrorSeverity.ERROR,
                         reraise=False, logger=logger)
            return

        logger.info("Configuration changed; rebuilding copy and watch state")
        was_watching = self.watch.is_active
        self.watch.stop()
        if self._cycle_task is not None and not self._cycle_task.done():
            await asyncio.gather(self._cycle_task, return_exceptions=True)

        self.apply_config(new_config)
        await self.run_cycle()
        if was_watching or new_config.sync.watch_on_start:
            await self.start_watch()

    def apply_config(self, config: AppConfig) -> None:
        """Point every component at ``config``; the run context is kept."""
        self.config = config
        self.driver = BuildDriver.from_config(config.build_tool, self.tracker, self.runner_factory)

        orchestrator = self.orchestrator
        orchestrator.settings = config.sync
        orchestrator.project = config.project
        orchestrator.driver = self.driver
        orchestrator.importer_config = config.importer
        orchestrator.result_store = CycleResultStore(config.sync.state_file) if config.sync.state_file else None
        if self._importer_override is None:
            orchestrator.importer = create_importer(config.importer)

        self.watch.driver = self.driver
        self.watch.settings = config.sync

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


_SUPERVISOR: Optional[SyncSupervisor] = None


def get_supervisor(**kwargs) -> SyncSupervisor:
    """
    Get the process-wide supervisor, creating it from the loaded
    configuration on first use.
    """
    global _SUPERVISOR
    if _SUPERVISOR is None:
        _SUPERVISOR = SyncSupervisor(get_config(), **kwargs)
    return _SUPERVISOR


def reset_supervisor() -> None:
    global _SUPERVISOR
    _SUPERVISOR = None
