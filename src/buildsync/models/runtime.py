"""
Runtime data models.

Cycle-scoped structures: the build tool information fetched at the start of a
cycle and the artifacts resolved from it.
"""

from dataclasses import dataclass
from typing import Dict

EXECUTION_ROOT_KEY = "execution_root"
OUTPUT_ROOT_KEY = "bazel-bin"
WORKSPACE_ROOT_KEY = "workspace"

CYCLE_INFO_KEYS = (EXECUTION_ROOT_KEY, OUTPUT_ROOT_KEY, WORKSPACE_ROOT_KEY)


def normalize_separators(path: str) -> str:
    """Use forward slashes as the single canonical path separator."""
    return path.replace("\\", "/")


@dataclass(frozen=True)
class BuildInfo:
    """
    Build tool information shared read-only by every task of one cycle.
    """

    execution_root: str
    output_root: str
    workspace_root: str

    @classmethod
    def from_mapping(cls, values: Dict[str, str]) -> "BuildInfo":
        """
        Build from an ``info`` query result.

        Raises:
            KeyError: If one of the required keys is missing
        """
        missing = [key for key in CYCLE_INFO_KEYS if not values.get(key)]
        if missing:
            raise KeyError(f"build info is missing {missing}")
        return cls(
            execution_root=normalize_separators(values[EXECUTION_ROOT_KEY]).rstrip("/"),
            output_root=normalize_separators(values[OUTPUT_ROOT_KEY]).rstrip("/"),
            workspace_root=normalize_separators(values[WORKSPACE_ROOT_KEY]).rstrip("/"),
        )


@dataclass(frozen=True)
class OutputArtifact:
    """A single build output and where it goes."""

    raw_path: str
    # Absolute path of the built file.
    source_path: str
    # Destination; relative destinations are anchored at the project root.
    destination_path: str
