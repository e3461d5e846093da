"""
Island lifecycle states
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class IslandState(str, Enum):
    """Lifecycle of a single island"""

    INITIALISING = "INITIALISING"
    SEARCHING = "SEARCHING"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"
    CRASHED = "CRASHED"

    @property
    def is_terminal(self) -> bool:
        return self in (IslandState.FINISHED, IslandState.CANCELLED, IslandState.CRASHED)


@dataclass
class StateInfo:
    """Progress snapshot an island sends along with a state change"""

    island_id: str
    state: IslandState = IslandState.INITIALISING
    generation: int = 0
    progress: float = 0.0
    best_fitness: float | None = None
    coverage: float | None = None
    timestamp: float = field(default_factory=time.time)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StateInfo":
        data = dict(data)
        data["state"] = IslandState(data.get("state", IslandState.INITIALISING))
        return cls(**data)
