"""
The copy cycle.

A cycle queries build information and starts one aggregate build at the same
time, then queries, resolves and copies the outputs of every enabled package
concurrently. The build result decides whether the cycle succeeded; a
successful cycle hands the written paths to the asset importer.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..driver import BuildDriver
from ..host import AssetImporter, LoggingImporter
from ..models.config import (
    AppConfig,
    ImporterConfig,
    PackageCopyEntry,
    ProjectConfig,
    RunContextKind,
    SyncSettings,
)
from ..models.results import CycleResult
from ..models.runtime import CYCLE_INFO_KEYS, BuildInfo
from ..progress import ProgressStatus, ProgressTracker
from ..resolution import OutputPathResolver, PackageLocator
from ..sync import SyncEngine
from ..validation import (
    ErrorSeverity,
    ImporterBusyError,
    PathResolutionError,
    SyncError,
    async_retry,
    handle_error,
)
from .result_store import CycleResultStore
from .shared_state import CycleGuard, CycleState

logger = logging.getLogger(__name__)

CYCLE_NODE_LABEL = "Copy Build Outputs"

EntryOutcome = Tuple[List[str], List[str]]


class CopyOrchestrator:
    """
    Runs copy cycles, at most one at a time.

    Attributes:
        last_result: Result of the most recent completed cycle
        pending_import: Background task retrying a refresh the importer
            rejected as busy, if any
    """

    def __init__(
        self,
        settings: SyncSettings,
        project: ProjectConfig,
        driver: BuildDriver,
        tracker: ProgressTracker,
        importer: Optional[AssetImporter] = None,
        importer_config: Optional[ImporterConfig] = None,
        sync_engine: Optional[SyncEngine] = None,
        result_store: Optional[CycleResultStore] = None,
        locator_factory: Callable[[Path, str], PackageLocator] = PackageLocator,
    ):
        self.settings = settings
        self.project = project
        self.driver = driver
        self.tracker = tracker
        self.importer = importer or LoggingImporter()
        self.importer_config = importer_config or ImporterConfig()
        self.sync_engine = sync_engine or SyncEngine()
        self.result_store = result_store
        self.locator_factory = locator_factory

        self.context: RunContextKind = project.context
        self.guard = CycleGuard()
        self.last_result: Optional[CycleResult] = None
        self.pending_import: Optional[asyncio.Task] = None
        self._pending_paths: List[str] = []

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        driver: BuildDriver,
        tracker: ProgressTracker,
        importer: Optional[AssetImporter] = None,
    ) -> "CopyOrchestrator":
        store = CycleResultStore(config.sync.state_file) if config.sync.state_file else None
        return cls(
            config.sync,
            config.project,
            driver,
            tracker,
            importer=importer,
            importer_config=config.importer,
            result_store=store,
        )

    @property
    def state(self) -> CycleState:
        return self.guard.state

    @property
    def is_running(self) -> bool:
        return self.guard.is_running

    def enabled_entries(self) -> List[PackageCopyEntry]:
        """Entries with a label that apply to the current run context, in order."""
        return [
            entry for entry in self.settings.packages
            if not entry.is_empty and entry.applies_to(self.context)
        ]

    async def run_cycle(self) -> Optional[CycleResult]:
        """
        Run one copy cycle.

        Returns:
            The cycle result, or None if a cycle was already running
        """
        if not self.guard.try_acquire():
            logger.warning("A copy cycle is already running; ignoring the new request")
            return None

        with self.guard.running() as outcome:
            result = await self._run_cycle()
            outcome.succeeded = result.succeeded

        self.last_result = result
        self._persist(result)
        return result

    async def _run_cycle(self) -> CycleResult:
        result = CycleResult()
        labels = self.settings.labels()

        if not labels:
            logger.info("No packages configured; nothing to copy")
            result.succeeded = True
            result.finished_at = time.time()
            return result

        entries = self.enabled_entries()
        logger.info(
            f"Starting copy cycle: {len(labels)} label(s) to build, "
            f"{len(entries)} package(s) to copy for the {self.context.value} context"
        )
        cycle_id = self.tracker.start(CYCLE_NODE_LABEL, f"{len(entries)} package(s)", indefinite=True)

        try:
            await self._run_steps(labels, entries, cycle_id, result)
        except asyncio.CancelledError:
            logger.warning("Copy cycle cancelled")
            self.tracker.finish(cycle_id, ProgressStatus.CANCELLED, "Cancelled")
            raise
        except Exception as e:
            handle_error(e, "copy cycle", severity=ErrorSeverity.CRITICAL, reraise=False, logger=logger)
            result.errors.append(f"unexpected error: {e}")
            result.succeeded = False

        result.finished_at = time.time()
        if result.succeeded:
            self.tracker.finish(cycle_id, ProgressStatus.DONE)
            logger.info(
                f"Copy cycle succeeded: {len(result.written)} file(s) written "
                f"in {result.finished_at - result.started_at:.2f}s"
            )
        else:
            summary = result.errors[-1] if result.errors else "copy cycle failed"
            self.tracker.finish(cycle_id, ProgressStatus.FAILED, summary)
            logger.error(f"Copy cycle failed with {len(result.errors)} error(s)")
        return result

    async def _run_steps(
        self,
        labels: List[str],
        entries: List[PackageCopyEntry],
        cycle_id: int,
        result: CycleResult,
    ) -> None:
        info_task = asyncio.create_task(self.driver.query_info(CYCLE_INFO_KEYS, parent_id=cycle_id))
        build_task = asyncio.create_task(self.driver.build(labels, parent_id=cycle_id))
        try:
            await self._collect(info_task, build_task, entries, cycle_id, result)
        except asyncio.CancelledError:
            # Both commands are killed by the driver once their tasks are cancelled.
            info_task.cancel()
            build_task.cancel()
            await asyncio.gather(info_task, build_task, return_exceptions=True)
            raise

    async def _collect(
        self,
        info_task: "asyncio.Task[Dict[str, str]]",
        build_task: "asyncio.Task[bool]",
        entries: List[PackageCopyEntry],
        cycle_id: int,
        result: CycleResult,
    ) -> None:
        info: Optional[BuildInfo] = None
        try:
            info = BuildInfo.from_mapping(await info_task)
        except (SyncError, KeyError) as e:
            handle_error(e, "build info query", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
            result.errors.append(f"build info: {e}")

        if info is not None:
            resolver = OutputPathResolver(self.locator_factory(self.project.root, self.project.packages_dir))
            outcomes = await asyncio.gather(
                *(self._copy_entry(entry, info, resolver, cycle_id) for entry in entries),
                return_exceptions=True,
            )
            for entry, outcome in zip(entries, outcomes):
                if isinstance(outcome, BaseException):
                    handle_error(outcome, f"copying outputs of {entry.label}",
                                 severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
                    result.errors.append(f"{entry.label}: {outcome}")
                    continue
                written, errors = outcome
                result.written.extend(written)
                result.errors.extend(errors)

        result.build_succeeded = await self._await_build(build_task, result)
        result.succeeded = info is not None and result.build_succeeded

        if result.succeeded and result.written:
            await self._refresh_importer(result.written, result)

    async def _await_build(self, build_task: "asyncio.Task[bool]", result: CycleResult) -> bool:
        try:
            succeeded = await build_task
        except SyncError as e:
            handle_error(e, "build", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
            result.errors.append(f"build: {e}")
            return False
        if not succeeded:
            diagnostics = self.driver.last_build_diagnostics.splitlines()
            result.errors.append(f"build failed: {diagnostics[-1] if diagnostics else 'see build output'}")
        return succeeded

    async def _copy_entry(
        self,
        entry: PackageCopyEntry,
        info: BuildInfo,
        resolver: OutputPathResolver,
        cycle_id: int,
    ) -> EntryOutcome:
        node_id = self.tracker.start(f"Copy {entry.label}", parent_id=cycle_id)
        try:
            return await self._copy_outputs(entry, info, resolver, node_id)
        except asyncio.CancelledError:
            self.tracker.finish(node_id, ProgressStatus.CANCELLED, "Cancelled")
            raise

    async def _copy_outputs(
        self,
        entry: PackageCopyEntry,
        info: BuildInfo,
        resolver: OutputPathResolver,
        node_id: int,
    ) -> EntryOutcome:
        try:
            raw_paths = await self.driver.query_outputs(entry.label, parent_id=node_id)
        except SyncError as e:
            self.tracker.finish(node_id, ProgressStatus.FAILED, str(e))
            raise

        if not raw_paths:
            logger.warning(f"{entry.label} declares no output files; nothing copied")
            self.tracker.finish(node_id, ProgressStatus.DONE)
            return [], []

        pattern = self.settings.pattern_for(entry)
        errors: List[str] = []
        pairs: List[Tuple[str, Path]] = []
        for raw_path in raw_paths:
            try:
                artifact = resolver.resolve(raw_path, pattern, info, self.project.root_override)
            except PathResolutionError as e:
                handle_error(e, f"resolving outputs of {entry.label}",
                             severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
                errors.append(f"{entry.label}: {e}")
                continue
            pairs.append((artifact.source_path, self._anchor(artifact.destination_path)))

        self.tracker.set_description(node_id, f"Copying {len(pairs)} file(s)")
        written_paths, copy_errors = await asyncio.to_thread(self.sync_engine.copy_all, pairs)
        errors.extend(f"{entry.label}: {e}" for e in copy_errors)
        self.tracker.report(node_id, len(written_paths), len(raw_paths))

        if errors:
            self.tracker.finish(
                node_id, ProgressStatus.FAILED,
                f"{len(errors)} of {len(raw_paths)} output(s) not copied",
            )
        else:
            self.tracker.finish(node_id, ProgressStatus.DONE)
        logger.info(f"{entry.label}: copied {len(written_paths)} of {len(raw_paths)} output(s)")
        return [str(path) for path in written_paths], errors

    def _anchor(self, destination: str) -> Path:
        path = Path(destination)
        if not path.is_absolute():
            path = self.project.root / path
        return path

    async def _refresh_importer(self, paths: Sequence[str], result: CycleResult) -> None:
        try:
            await self.importer.refresh(list(paths))
        except ImporterBusyError as e:
            logger.info(f"Asset importer is busy ({e}); retrying in the background")
            self._schedule_import_retry(paths)
        except SyncError as e:
            handle_error(e, "asset import", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
            result.errors.append(f"import: {e}")

    def _schedule_import_retry(self, paths: Sequence[str]) -> None:
        # A newer retry covers the paths of the one it replaces.
        if self.pending_import is not None and not self.pending_import.done():
            self.pending_import.cancel()
            merged = list(dict.fromkeys([*self._pending_paths, *paths]))
        else:
            merged = list(paths)
        self._pending_paths = merged
        self.pending_import = asyncio.create_task(self._retry_import(merged))

    async def _retry_import(self, paths: List[str]) -> None:
        delay = self.importer_config.retry_delay_seconds
        await asyncio.sleep(delay)
        try:
            await async_retry(
                lambda: self.importer.refresh(paths),
                retry_on=(ImporterBusyError,),
                delay=delay,
                max_attempts=self.importer_config.max_attempts,
                context="asset import",
            )
        except SyncError as e:
            handle_error(e, "asset import retry", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
        else:
            self._pending_paths = []

    def _persist(self, result: CycleResult) -> None:
        if self.result_store is None:
            return
        if not self.settings.labels():
            self.result_store.clear()
        else:
            self.result_store.save(result)

    async def close(self) -> None:
        """Cancel a pending import retry."""
        task = self.pending_import
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Pending asset import cancelled")
        self.pending_import = None
        self._pending_paths = []
