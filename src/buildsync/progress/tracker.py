"""
Hierarchical, cancelable progress tracking.

The ProgressTracker owns a tree of ProgressNode objects and forwards every
change to a ProgressHost. Removing a node never removes its children: each
owner removes the nodes it started.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..host.contracts import NullProgressHost, ProgressHost

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], bool]


class ProgressStatus(Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ProgressNode:
    """One unit of reported work."""

    id: int
    label: str
    description: str = ""
    parent_id: Optional[int] = None
    indefinite: bool = False
    current: int = 0
    total: int = 0
    message: str = ""
    step_label: str = ""
    status: ProgressStatus = ProgressStatus.RUNNING
    cancel_callback: Optional[CancelCallback] = None

    @property
    def cancelable(self) -> bool:
        return self.cancel_callback is not None

    @property
    def fraction(self) -> Optional[float]:
        if self.indefinite or self.total <= 0:
            return None
        return self.current / self.total


class ProgressTracker:
    """
    Owns the progress tree shown by the host.

    Counters reported through ``report()`` are stored as given: the last
    write wins even when a counter goes down.
    """

    def __init__(self, host: Optional[ProgressHost] = None):
        self.host = host or NullProgressHost()
        self._nodes: Dict[int, ProgressNode] = {}
        self._ids = itertools.count(1)

    def start(
        self,
        label: str,
        description: str = "",
        indefinite: bool = False,
        parent_id: Optional[int] = None,
    ) -> int:
        """Create a RUNNING node and return its id."""
        if parent_id is not None and parent_id not in self._nodes:
            logger.debug(f"Parent progress node {parent_id} does not exist; starting '{label}' as a root")
            parent_id = None

        node = ProgressNode(
            id=next(self._ids),
            label=label,
            description=description,
            parent_id=parent_id,
            indefinite=indefinite,
        )
        self._nodes[node.id] = node
        self.host.node_started(node)
        return node.id

    def report(self, node_id: int, current: int, total: int, message: str = "") -> None:
        """Update a node's counters and message."""
        node = self._get_running(node_id)
        if node is None:
            return
        node.current = current
        node.total = total
        node.message = message
        self.host.node_updated(node)

    def set_description(self, node_id: int, description: str) -> None:
        node = self._get_running(node_id)
        if node is None:
            return
        node.description = description
        self.host.node_updated(node)

    def set_step_label(self, node_id: int, step_label: str) -> None:
        node = self._get_running(node_id)
        if node is None:
            return
        node.step_label = step_label
        self.host.node_updated(node)

    def finish(self, node_id: int, status: ProgressStatus = ProgressStatus.DONE,
               message: Optional[str] = None) -> None:
        """
        Finish a node.

        DONE removes the node. FAILED and CANCELLED leave it visible until
        ``dismiss()``. A node that was cancelled stays CANCELLED whatever
        status its owner finishes it with.
        """
        if status is ProgressStatus.RUNNING:
            raise ValueError("finish() needs a terminal status")

        node = self._nodes.get(node_id)
        if node is None:
            return

        if node.status is ProgressStatus.CANCELLED:
            status = ProgressStatus.CANCELLED
        if message is not None:
            node.description = message

        if status is ProgressStatus.DONE:
            node.status = status
            self.remove(node_id)
            return

        node.status = status
        self.host.node_finished(node)

    def remove(self, node_id: int) -> None:
        """Remove a node; its children are left in place."""
        node = self._nodes.pop(node_id, None)
        if node is None:
            return
        self.host.node_removed(node)

    dismiss = remove

    def register_cancel_callback(self, node_id: int, callback: CancelCallback) -> None:
        node = self._nodes.get(node_id)
        if node is None:
            return
        node.cancel_callback = callback
        self.host.node_updated(node)

    def cancel(self, node_id: int) -> bool:
        """
        Request cancellation of a node.

        Returns:
            True if the node's cancel callback accepted the request
        """
        node = self._nodes.get(node_id)
        if node is None or node.status is not ProgressStatus.RUNNING or node.cancel_callback is None:
            return False

        try:
            accepted = bool(node.cancel_callback())
        except Exception as e:
            logger.error(f"Cancel callback for '{node.label}' failed: {e}", exc_info=True)
            return False

        # The callback may have removed the node itself.
        if accepted and node_id in self._nodes:
            node.status = ProgressStatus.CANCELLED
            self.host.node_finished(node)
        return accepted

    def cancel_all(self) -> int:
        """Request cancellation of every running cancelable node."""
        cancelled = 0
        for node in list(self._nodes.values()):
            if node.cancelable and node.status is ProgressStatus.RUNNING:
                if self.cancel(node.id):
                    cancelled += 1
        return cancelled

    def get(self, node_id: int) -> Optional[ProgressNode]:
        return self._nodes.get(node_id)

    def children(self, node_id: int) -> List[ProgressNode]:
        return [node for node in self._nodes.values() if node.parent_id == node_id]

    @property
    def nodes(self) -> List[ProgressNode]:
        return list(self._nodes.values())

    def _get_running(self, node_id: int) -> Optional[ProgressNode]:
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug(f"Ignoring update for unknown progress node {node_id}")
            return None
        if node.status is not ProgressStatus.RUNNING:
            return None
        return node
