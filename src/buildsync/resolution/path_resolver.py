"""
Output path resolution.

Maps a raw build output path (relative to the build tool's execution root)
through a user path template to the destination in the consumer project.

Template placeholders:

- ``{FILEPATH}``: the output's path below the output root, or the raw path
  when the output does not live under the output root
- ``{FILENAME}``: the output's base name
- ``{EXTNAME}``: the output's extension, including the leading dot

A destination starting with ``Packages/<name>/`` is redirected to where
package ``<name>`` is actually installed.
"""

import logging
import posixpath
from pathlib import Path
from typing import Optional, Union

from ..models.runtime import BuildInfo, OutputArtifact, normalize_separators
from ..validation import PathResolutionError, find_unknown_placeholders
from .packages import PackageLocator

logger = logging.getLogger(__name__)

PACKAGE_NAMESPACE = "Packages"


def _relative_to_root(path: str, root: str) -> Optional[str]:
    """Return ``path`` below ``root`` (segment-aligned), or None."""
    root = root.rstrip("/")
    if root and path.startswith(root + "/"):
        return path[len(root) + 1:]
    return None


class OutputPathResolver:
    """
    Resolves raw output paths to source and destination paths.
    """

    def __init__(self, locator: PackageLocator):
        self.locator = locator

    def resolve(
        self,
        raw_path: str,
        pattern: str,
        info: BuildInfo,
        root_override: Optional[Union[str, Path]] = None,
    ) -> OutputArtifact:
        """
        Resolve one raw output path.

        Args:
            raw_path: Output path as printed by the output query
            pattern: Output path template
            info: Build tool information for the current cycle
            root_override: Directory destinations are re-anchored at

        Returns:
            The artifact with absolute source and resolved destination paths

        Raises:
            PathResolutionError: If the template is malformed or a package
                name cannot be extracted
        """
        raw = normalize_separators(raw_path).strip()
        if not raw:
            raise PathResolutionError(raw_path, "empty output path")
        if not pattern:
            raise PathResolutionError(raw_path, "empty output path template")

        source_path = posixpath.join(info.execution_root, raw)

        file_path = _relative_to_root(source_path, info.output_root)
        if file_path is None:
            file_path = raw

        file_name = posixpath.basename(source_path)
        destination = (
            normalize_separators(pattern)
            .replace("{FILEPATH}", file_path)
            .replace("{FILENAME}", file_name)
            .replace("{EXTNAME}", posixpath.splitext(file_name)[1])
        )

        unknown = find_unknown_placeholders(destination)
        if unknown:
            raise PathResolutionError(raw_path, f"unknown placeholder(s) {unknown} in '{pattern}'")

        override = normalize_separators(str(root_override)) if root_override else None

        package_path = _relative_to_root(destination, PACKAGE_NAMESPACE)
        if package_path is not None:
            destination = self._rewrite_package_path(raw_path, package_path, override)
        elif override:
            destination = posixpath.join(override, destination)

        return OutputArtifact(raw_path=raw_path, source_path=source_path, destination_path=destination)

    def _rewrite_package_path(self, raw_path: str, package_path: str, override: Optional[str]) -> str:
        package_name, _, remainder = package_path.partition("/")
        if not package_name:
            raise PathResolutionError(
                raw_path, f"no package name after '{PACKAGE_NAMESPACE}/' in the resolved path"
            )

        if override:
            base = posixpath.join(override, self.locator.relative_install_path(package_name))
            base = posixpath.normpath(base)
        else:
            base = self.locator.install_path(package_name).as_posix()

        return posixpath.join(base, remainder) if remainder else base
