"""
Signal handling for the orchestration module.

SIGINT and SIGTERM cancel every running operation and stop the watch
session; SIGHUP reloads the configuration file, which notifies the
``config_changed`` listeners.
"""

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, List, Optional

from ..config import reload_config
from ..validation import ErrorSeverity, ValidationError, handle_config_error

if TYPE_CHECKING:
    from .supervisor import SyncSupervisor

logger = logging.getLogger(__name__)


class SignalHandler:
    """
    Installs the loop's signal handlers for one supervisor.
    """

    def __init__(self, supervisor: "SyncSupervisor", shutdown_requested: asyncio.Event):
        self.supervisor = supervisor
        self.shutdown_requested = shutdown_requested
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: List[int] = []

    def setup_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set up the shutdown and reload handlers on ``loop``."""
        self._loop = loop
        handlers = [(signal.SIGINT, self._on_shutdown_signal), (signal.SIGTERM, self._on_shutdown_signal)]
        if hasattr(signal, "SIGHUP"):
            handlers.append((signal.SIGHUP, self._on_reload_signal))

        for signum, handler in handlers:
            try:
                loop.add_signal_handler(signum, handler, signum)
                self._installed.append(signum)
            except (NotImplementedError, RuntimeError) as e:
                logger.warning(f"Failed to set up handler for signal {signum}: {e}")
        logger.debug(f"Signal handlers set up for {len(self._installed)} signal(s)")

    def cleanup_signal_handlers(self) -> None:
        """Remove the handlers installed by ``setup_signal_handlers()``."""
        if self._loop is None:
            return
        for signum in self._installed:
            self._loop.remove_signal_handler(signum)
        self._installed.clear()
        self._loop = None
        logger.debug("Signal handlers removed")

    def _on_shutdown_signal(self, signum: int) -> None:
        if self.shutdown_requested.is_set():
            logger.warning("Shutdown already in progress. Please be patient.")
            return

        logger.info(f"Signal {signal.strsignal(signum)} received. Initiating graceful shutdown...")
        self.shutdown_requested.set()
        cancelled = self.supervisor.tracker.cancel_all()
        if cancelled:
            logger.info(f"Cancellation requested for {cancelled} running operation(s)")
        self.supervisor.watch.stop()

    def _on_reload_signal(self, signum: int) -> None:
        logger.info(f"Signal {signal.strsignal(signum)} received. Reloading configuration...")
        try:
            reload_config()
        except (OSError, ValueError, ValidationError) as e:
            handle_config_error(e, "reload", severity=ErrorSeverity.ERROR, reraise=False, logger=logger)
            logger.warning("Keeping the previous configuration")
