"""
Cycle result model.

A CycleResult records what one copy cycle wrote and whether it succeeded. It
is kept on the orchestrator between cycles and can be serialized to the
state file for inspection.
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class CycleResult:
    """
    Outcome of a single copy cycle.
    """

    # Destination paths written during the cycle, in no particular order.
    written: List[str] = field(default_factory=list)
    succeeded: bool = False
    # None when no build was needed (no labels configured).
    build_succeeded: Optional[bool] = None
    # Human-readable description of every artifact or task that failed.
    errors: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CycleResult":
        return cls(
            written=list(data.get("written", [])),
            succeeded=bool(data.get("succeeded", False)),
            build_succeeded=data.get("build_succeeded"),
            errors=list(data.get("errors", [])),
            started_at=float(data.get("started_at", 0.0)),
            finished_at=data.get("finished_at"),
        )
