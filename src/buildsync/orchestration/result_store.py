"""
Persistence of the last cycle result.

The written paths of the last copy cycle are kept in a small JSON file so they
can be inspected between cycles and across sessions.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from ..models.results import CycleResult
from ..validation import ErrorSeverity, handle_file_error

logger = logging.getLogger(__name__)


class CycleResultStore:
    """
    Reads and writes the state file holding the last CycleResult.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, result: CycleResult) -> None:
        """Write ``result``; failures are logged, never raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(result.to_dict(), f, indent=2)
            tmp_path.replace(self.path)
            logger.debug(f"Saved cycle result with {len(result.written)} path(s) to {self.path}")
        except OSError as e:
            handle_file_error(e, f"writing cycle result to {self.path}",
                              severity=ErrorSeverity.WARNING, reraise=False, logger=logger)

    def load(self) -> Optional[CycleResult]:
        """Return the persisted result, or None if there is none."""
        if not self.path.is_file():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return CycleResult.from_dict(json.load(f))
        except (OSError, ValueError, TypeError) as e:
            handle_file_error(e, f"reading cycle result from {self.path}",
                              severity=ErrorSeverity.WARNING, reraise=False, logger=logger)
            return None

    def clear(self) -> None:
        """Forget the persisted result."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            handle_file_error(e, f"removing {self.path}",
                              severity=ErrorSeverity.WARNING, reraise=False, logger=logger)
