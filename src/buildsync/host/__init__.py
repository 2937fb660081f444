"""
Host environment contracts and adapters.

- ProgressHost: receives progress tree changes
- AssetImporter: imports written files after a successful copy
"""

from .contracts import AssetImporter, NullProgressHost, ProgressHost
from .importers import CommandImporter, LoggingImporter, create_importer

__all__ = [
    "AssetImporter",
    "CommandImporter",
    "LoggingImporter",
    "NullProgressHost",
    "ProgressHost",
    "create_importer",
]
