"""
Contracts for the host environment.

The core reports progress to a ProgressHost and notifies an AssetImporter
after a successful copy. Neither depends on how the host renders or imports.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from ..progress.tracker import ProgressNode


class ProgressHost(ABC):
    """
    Receives every change made to the progress tree.

    Implementations must not call back into the tracker that notifies them.
    """

    @abstractmethod
    def node_started(self, node: "ProgressNode") -> None:
        """A node was created."""

    @abstractmethod
    def node_updated(self, node: "ProgressNode") -> None:
        """A node's counters, description or step label changed."""

    @abstractmethod
    def node_finished(self, node: "ProgressNode") -> None:
        """A node reached FAILED or CANCELLED and stays visible."""

    @abstractmethod
    def node_removed(self, node: "ProgressNode") -> None:
        """A node was removed (finished successfully or dismissed)."""


class NullProgressHost(ProgressHost):
    """A host that ignores every notification."""

    def node_started(self, node: "ProgressNode") -> None:
        pass

    def node_updated(self, node: "ProgressNode") -> None:
        pass

    def node_finished(self, node: "ProgressNode") -> None:
        pass

    def node_removed(self, node: "ProgressNode") -> None:
        pass


class AssetImporter(ABC):
    """
    The consuming environment's import/index step.
    """

    @abstractmethod
    async def refresh(self, paths: Sequence[str]) -> None:
        """
        Import or re-index the given written paths.

        Raises:
            ImporterBusyError: If the import step is busy and the request
                should be repeated later
        """
