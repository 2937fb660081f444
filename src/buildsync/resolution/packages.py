"""
Package install locations in the consumer project.

Packages live under ``<project>/<packages_dir>/<name>`` unless the packages
manifest (``<packages_dir>/manifest.json``) points a dependency at a local
directory with a ``file:`` reference.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from ..validation import ErrorSeverity, handle_file_error

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
FILE_REFERENCE_PREFIX = "file:"


class PackageLocator:
    """
    Finds where a named package is installed.

    The manifest is read once per locator; create a new locator to pick up
    manifest changes.
    """

    def __init__(self, project_root: Path, packages_dir: str = "Packages"):
        self.project_root = Path(project_root)
        self.packages_dir = packages_dir
        self._local_packages: Optional[Dict[str, Path]] = None

    @property
    def packages_root(self) -> Path:
        return self.project_root / self.packages_dir

    def _load_manifest(self) -> Dict[str, Path]:
        manifest_path = self.packages_root / MANIFEST_FILE
        if not manifest_path.is_file():
            return {}

        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                manifest = json.load(f)
        except (OSError, ValueError) as e:
            handle_file_error(
                e,
                f"reading package manifest {manifest_path}",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
            return {}

        local: Dict[str, Path] = {}
        dependencies = manifest.get("dependencies", {}) if isinstance(manifest, dict) else {}
        for name, reference in dependencies.items():
            if isinstance(reference, str) and reference.startswith(FILE_REFERENCE_PREFIX):
                target = Path(reference[len(FILE_REFERENCE_PREFIX):])
                if not target.is_absolute():
                    target = self.packages_root / target
                local[name] = Path(os.path.normpath(target))
        return local

    def install_path(self, package_name: str) -> Path:
        """Absolute install location of ``package_name``."""
        if self._local_packages is None:
            self._local_packages = self._load_manifest()
        local = self._local_packages.get(package_name)
        if local is not None:
            return local
        return self.packages_root / package_name

    def relative_install_path(self, package_name: str) -> str:
        """Install location relative to the project root, with '/' separators."""
        relative = os.path.relpath(self.install_path(package_name), self.project_root)
        return Path(relative).as_posix()
