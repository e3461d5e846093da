"""
Contracts between the coordination layer and its collaborators.

The coordination layer never looks inside an island: it only calls the
operations below. In distributed mode the endpoint is a remote proxy, in
meta-mode it is the worker object itself.
"""

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from archipelago.state import IslandState, StateInfo

if TYPE_CHECKING:
    from archipelago.identity import IslandId


@runtime_checkable
class WorkerEndpoint(Protocol):
    """
    Handle to one island.
    """

    def receive_migrants(self, batch: Sequence[Any]) -> None:
        """
        Append immigrants to the island's population.

        Must be safe to call from another thread while the island is between
        generations.
        """
        ...

    def report_state(self, state: IslandState, info: StateInfo | None = None) -> None:
        """Called by the island itself on every state transition."""
        ...

    def cancel(self) -> None:
        """Ask the island to stop at its next cancellation point. Returns promptly."""
        ...

    def collect_best_solutions(self, solutions: Iterable[Any]) -> None:
        """Terminal sink on the aggregator island."""
        ...


@runtime_checkable
class SteppableWorker(WorkerEndpoint, Protocol):
    """Endpoint that can also be advanced synchronously (meta-mode)"""

    @property
    def population(self) -> list[Any]: ...

    def step_one_generation(self) -> None:
        """Run one evolutionary step."""
        ...


class NameService(Protocol):
    """
    Where islands publish their endpoints before registering.
    """

    def bind(self, island_id: "IslandId | str", endpoint: Any) -> None: ...

    def lookup(self, island_id: "IslandId | str") -> Any:
        """
        Resolve an endpoint.

        Raises:
            RegistrationError: if nothing is bound under ``island_id``
        """
        ...

    def unbind(self, island_id: "IslandId | str") -> None: ...


class StateListener(Protocol):
    """Receives every state change reported to the coordinator"""

    def receive_event(self, info: StateInfo) -> None: ...


class SearchListener(Protocol):
    """Receives progress of a meta-driver run"""

    def iteration(self, driver: Any) -> None: ...

    def search_finished(self, driver: Any) -> None: ...


class StoppingCondition(Protocol):
    """Termination oracle for a meta-driver run"""

    def is_finished(self, driver: Any) -> bool: ...

    def reset(self) -> None: ...
