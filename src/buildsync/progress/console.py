"""
Logging-based progress host.

Renders progress tree changes as log records, indented by tree depth. This is
the host used by the command line interface.
"""

import logging
from typing import Dict, Optional

from ..host.contracts import ProgressHost
from .tracker import ProgressNode, ProgressStatus

logger = logging.getLogger("buildsync.progress")


class LoggingProgressHost(ProgressHost):
    """
    Writes progress events to the ``buildsync.progress`` logger.

    Counter updates are logged at DEBUG; starts, failures and cancellations
    at INFO and above so a default console shows the interesting part.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger
        self._depth: Dict[int, int] = {}

    def _prefix(self, node: ProgressNode) -> str:
        return "  " * self._depth.get(node.id, 0)

    def node_started(self, node: ProgressNode) -> None:
        depth = 0
        if node.parent_id is not None:
            depth = self._depth.get(node.parent_id, 0) + 1
        self._depth[node.id] = depth
        suffix = f": {node.description}" if node.description else ""
        self.log.info(f"{self._prefix(node)}[{node.label}] started{suffix}")

    def node_updated(self, node: ProgressNode) -> None:
        if node.indefinite or node.total <= 0:
            self.log.debug(f"{self._prefix(node)}[{node.label}] {node.description}")
            return
        step = f" {node.step_label}" if node.step_label else ""
        self.log.debug(
            f"{self._prefix(node)}[{node.label}] {node.current}/{node.total}{step} {node.message}".rstrip()
        )

    def node_finished(self, node: ProgressNode) -> None:
        suffix = f": {node.description}" if node.description else ""
        if node.status is ProgressStatus.FAILED:
            self.log.error(f"{self._prefix(node)}[{node.label}] failed{suffix}")
        else:
            self.log.warning(f"{self._prefix(node)}[{node.label}] {node.status.value}{suffix}")

    def node_removed(self, node: ProgressNode) -> None:
        if node.status is ProgressStatus.DONE:
            self.log.info(f"{self._prefix(node)}[{node.label}] done")
        self._depth.pop(node.id, None)
