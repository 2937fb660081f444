"""
External process execution for the buildsync package.

This module provides the AsyncIO-based runner used for every build tool and
importer invocation.
"""

from .process_runner import LineCallback, ProcessRunner, runner_output

__all__ = [
    "LineCallback",
    "ProcessRunner",
    "runner_output",
]
