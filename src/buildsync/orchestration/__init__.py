"""
Orchestration module for build output synchronization.

Components:
- CopyOrchestrator: Runs copy cycles, one at a time
- SyncSupervisor: Owns the copy and watch machinery for one configuration
- CycleResultStore: Persists the last cycle's written paths
- SignalHandler: Signal-driven cancellation and configuration reload
"""

from .copy_orchestrator import CopyOrchestrator
from .result_store import CycleResultStore
from .shared_state import CycleGuard, CycleState
from .signal_handler import SignalHandler
from .supervisor import SyncSupervisor, get_supervisor, reset_supervisor

__all__ = [
    "CopyOrchestrator",
    "CycleGuard",
    "CycleResultStore",
    "CycleState",
    "SignalHandler",
    "SyncSupervisor",
    "get_supervisor",
    "reset_supervisor",
]
