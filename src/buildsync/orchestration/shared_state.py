"""
Shared state for the orchestration module.

This module defines the cycle state machine and the guard that keeps at most
one copy cycle running at a time.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

logger = logging.getLogger(__name__)


class CycleState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CycleGuard:
    """
    Mutual exclusion for copy cycles.

    Coordination is single-threaded, so a check-then-set with no await in
    between is atomic.
    """

    def __init__(self) -> None:
        self.state = CycleState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is CycleState.RUNNING

    def try_acquire(self) -> bool:
        if self.state is CycleState.RUNNING:
            return False
        self.state = CycleState.RUNNING
        return True

    def release(self, succeeded: bool) -> None:
        self.state = CycleState.SUCCEEDED if succeeded else CycleState.FAILED

    @contextmanager
    def running(self) -> Iterator["CycleOutcome"]:
        """
        Hold the RUNNING state for the duration of the block.

        The caller must have acquired the guard; the state always leaves
        RUNNING when the block exits, whichever way it exits.
        """
        outcome = CycleOutcome()
        try:
            yield outcome
        finally:
            self.release(outcome.succeeded)


class CycleOutcome:
    """Mutable success flag set by the body of ``CycleGuard.running()``."""

    def __init__(self) -> None:
        self.succeeded = False
