"""
Command-line interface for the buildsync package.

This module provides the main CLI entry point for the sync application.
"""

from .main import main_cli

__all__ = [
    "main_cli",
]
