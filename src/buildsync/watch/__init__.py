"""
Watching build output directories for changes.
"""

from .engine import OutputChangeHandler, WatchEngine, WatchEntry

__all__ = [
    "OutputChangeHandler",
    "WatchEngine",
    "WatchEntry",
]
