"""
Progress reporting for the buildsync package.
"""

from .console import LoggingProgressHost
from .tracker import CancelCallback, ProgressNode, ProgressStatus, ProgressTracker

__all__ = [
    "CancelCallback",
    "LoggingProgressHost",
    "ProgressNode",
    "ProgressStatus",
    "ProgressTracker",
]
