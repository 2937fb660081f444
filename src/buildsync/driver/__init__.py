"""
Build tool driving: info, build and output queries.
"""

from .build_driver import OUTPUT_FILES_EXPR, BuildDriver
from .progress_line import ProgressLine, parse_progress_line

__all__ = [
    "OUTPUT_FILES_EXPR",
    "BuildDriver",
    "ProgressLine",
    "parse_progress_line",
]
