"""
Copying build outputs into the consumer project.

Build tools typically leave their outputs read-only; destinations are made
writable before they are overwritten and after they are written.
"""

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from ..validation import ErrorSeverity, SyncIOError, handle_file_error

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def clear_read_only(path: Path) -> None:
    """Give the owner write permission on ``path``."""
    mode = path.stat().st_mode
    if not mode & stat.S_IWRITE:
        os.chmod(path, mode | stat.S_IWRITE)


class SyncEngine:
    """
    Byte-for-byte copies with overwrite and attribute normalization.
    """

    def copy(self, source: PathLike, destination: PathLike) -> Path:
        """
        Copy ``source`` over ``destination``.

        Returns:
            The destination path

        Raises:
            SyncIOError: If the source is missing or the destination cannot
                be written
        """
        source = Path(source)
        destination = Path(destination)

        if not source.is_file():
            raise SyncIOError(str(source), str(destination), "source file does not exist")

        try:
            if destination.exists():
                clear_read_only(destination)
            else:
                destination.parent.mkdir(parents=True, exist_ok=True)

            shutil.copyfile(source, destination)
            clear_read_only(destination)
        except OSError as e:
            raise SyncIOError(str(source), str(destination), e.strerror or str(e)) from e

        logger.debug(f"Copied {source} -> {destination}")
        return destination

    def copy_all(self, pairs: Iterable[Tuple[PathLike, PathLike]]) -> Tuple[List[Path], List[SyncIOError]]:
        """
        Copy every (source, destination) pair; a failure skips only that pair.

        Returns:
            Tuple of (written destinations, errors)
        """
        written: List[Path] = []
        errors: List[SyncIOError] = []
        for source, destination in pairs:
            try:
                written.append(self.copy(source, destination))
            except SyncIOError as e:
                handle_file_error(e, "copying build output", severity=ErrorSeverity.ERROR,
                                  reraise=False, logger=logger)
                errors.append(e)
        return written, errors
