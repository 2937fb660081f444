"""
Watching build output directories.

The WatchEngine asks the build tool where the outputs of every configured
package live and watches each distinct parent directory with a watchdog
observer. Change events arrive on the observer thread and are marshalled onto
the event loop, where they update the progress node of their directory and
optionally request a copy cycle.
"""

import asyncio
import logging
import os
import posixpath
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from ..driver import BuildDriver
from ..models.config import SyncSettings
from ..models.runtime import EXECUTION_ROOT_KEY, normalize_separators
from ..progress import ProgressTracker
from ..validation import ErrorSeverity, SyncError, handle_error

logger = logging.getLogger(__name__)

WATCH_NODE_LABEL = "Watch build outputs"

CHANGE_EVENT_TYPES = (EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED)

ChangeCallback = Callable[[str, str], None]


@dataclass
class WatchEntry:
    """One watched directory."""
    directory: str
    watch: ObservedWatch
    node_id: int


class OutputChangeHandler(FileSystemEventHandler):
    """
    Forwards file change events of one directory to the event loop.
    """

    def __init__(self, directory: str, loop: asyncio.AbstractEventLoop, callback: Callable[[str, str, str], None]):
        super().__init__()
        self.directory = directory
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in CHANGE_EVENT_TYPES:
            return
        # Runs on the observer thread.
        self._loop.call_soon_threadsafe(
            self._callback, self.directory, event.event_type, str(event.src_path)
        )


class WatchEngine:
    """
    Owns the set of watched output directories.

    At most one watch exists per directory. The whole set is torn down by
    ``stop()`` and rebuilt from scratch by ``restart()``.
    """

    def __init__(
        self,
        driver: BuildDriver,
        settings: SyncSettings,
        tracker: ProgressTracker,
        observer_factory: Callable[[], Observer] = Observer,
        on_change: Optional[ChangeCallback] = None,
    ):
        """
        Initialize the engine.

        Args:
            driver: Build driver used to locate the outputs
            settings: Sync settings providing the package labels
            tracker: Progress tracker receiving the watch nodes
            observer_factory: Creates the watchdog observer (replaced in tests)
            on_change: Called with (directory, path) on the event loop for
                every change
        """
        self.driver = driver
        self.settings = settings
        self.tracker = tracker
        self.observer_factory = observer_factory
        self.on_change = on_change

        self._entries: Dict[str, WatchEntry] = {}
        self._observer: Optional[Observer] = None
        self._parent_id: Optional[int] = None
        # Bumped by stop() so a start() still awaiting its queries gives up.
        self._generation = 0

    @property
    def is_active(self) -> bool:
        return self._observer is not None

    @property
    def directories(self) -> List[str]:
        return list(self._entries)

    @property
    def parent_node_id(self) -> Optional[int]:
        return self._parent_id

    async def start(self) -> int:
        """
        Start watching the output directories of every configured package.

        Directories that do not exist yet are skipped with a warning.

        Returns:
            Number of directories being watched

        Raises:
            ProcessSpawnError: If the build tool cannot be started
            ProcessExitError: If the execution root cannot be queried
            OSError: If the observer thread cannot be started
        """
        if self.is_active:
            logger.debug("Watch session already active")
            return len(self._entries)

        generation = self._generation
        loop = asyncio.get_running_loop()

        info = await self.driver.query_info([EXECUTION_ROOT_KEY])
        execution_root = normalize_separators(info.get(EXECUTION_ROOT_KEY, "")).rstrip("/")
        directories = await self._collect_directories(execution_root)

        if generation != self._generation:
            logger.info("Watch session was stopped while starting; not watching")
            return 0
        # Another start() finished while this one was querying.
        if self.is_active:
            logger.debug("Watch session already active")
            return len(self._entries)

        self._observer = self.observer_factory()
        try:
            self._observer.start()
        except OSError:
            self.stop()
            raise

        self._parent_id = self.tracker.start(WATCH_NODE_LABEL, indefinite=True)
        self.tracker.register_cancel_callback(self._parent_id, self._cancel)

        # Scheduled on a running observer: a directory that cannot be watched fails here.
        for directory in directories:
            if directory in self._entries:
                continue
            if not os.path.isdir(directory):
                logger.warning(f"Build output directory {directory} does not exist; not watching it")
                continue
            handler = OutputChangeHandler(directory, loop, self._handle_change)
            try:
                watch = self._observer.schedule(handler, directory, recursive=False)
            except OSError as e:
                handle_error(e, f"watching {directory}", severity=ErrorSeverity.WARNING,
                             reraise=False, logger=logger)
                continue
            node_id = self.tracker.start(directory, "Watching", indefinite=True, parent_id=self._parent_id)
            self._entries[directory] = WatchEntry(directory, watch, node_id)

        self.tracker.set_description(self._parent_id, f"{len(self._entries)} director(ies)")
        logger.info(f"Watching {len(self._entries)} build output director(ies)")
        return len(self._entries)

    async def _collect_directories(self, execution_root: str) -> List[str]:
        labels = self.settings.labels()
        outcomes = await asyncio.gather(
            *(self.driver.query_outputs(label) for label in labels),
            return_exceptions=True,
        )

        directories: List[str] = []
        for label, outcome in zip(labels, outcomes):
            if isinstance(outcome, SyncError):
                handle_error(outcome, f"locating outputs of {label}", severity=ErrorSeverity.WARNING,
                             reraise=False, logger=logger)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for raw_path in outcome:
                source = posixpath.join(execution_root, normalize_separators(raw_path))
                directory = posixpath.dirname(source)
                if directory not in directories:
                    directories.append(directory)
        return directories

    def _handle_change(self, directory: str, event_type: str, path: str) -> None:
        entry = self._entries.get(directory)
        if entry is None:
            return
        self.tracker.set_description(entry.node_id, f"{event_type}: {posixpath.basename(path)}")
        logger.debug(f"Build output {event_type}: {path}")
        if self.on_change is not None:
            self.on_change(directory, path)

    def _cancel(self) -> bool:
        self.stop()
        return True

    def stop(self) -> None:
        """Stop watching; safe to call when nothing is watched."""
        self._generation += 1
        observer = self._observer
        if observer is None and not self._entries:
            return

        for entry in self._entries.values():
            if observer is not None:
                try:
                    observer.unschedule(entry.watch)
                except KeyError:
                    logger.debug(f"Watch on {entry.directory} was already removed")
            self.tracker.remove(entry.node_id)
        self._entries.clear()

        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join()
        self._observer = None

        if self._parent_id is not None:
            self.tracker.remove(self._parent_id)
            self._parent_id = None
        logger.info("Stopped watching build outputs")

    async def restart(self) -> int:
        """Tear the watch set down and build it again from the current settings."""
        self.stop()
        return await self.start()
