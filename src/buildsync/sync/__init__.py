"""
File synchronization for the buildsync package.
"""

from .engine import SyncEngine, clear_read_only

__all__ = [
    "SyncEngine",
    "clear_read_only",
]
