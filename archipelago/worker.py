"""
Base class for islands
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from archipelago.identity import IslandId
from archipelago.selection import get_fitness
from archipelago.state import IslandState, StateInfo

logger = logging.getLogger(__name__)

StateSink = Callable[[IslandId, IslandState, StateInfo], Any]


@dataclass(frozen=True)
class WorkerSettings:
    """Everything an island needs to know about its own search"""

    island_id: IslandId
    algorithm: str
    criteria: tuple[str, ...] = ()


class IslandWorker(ABC):
    """
    One island: a population plus the operations the coordination layer calls.

    Subclasses provide the evolutionary step (``initial_population`` and
    ``evolve``); this class takes care of immigrants, cancellation, state
    reports and the aggregator sink. A generation runs with the population
    lock held, so immigrants arriving meanwhile are appended once it is over.
    """

    def __init__(
        self,
        settings: WorkerSettings,
        fitness: Callable[[Any], float] = get_fitness,
        maximize: bool = True,
    ):
        self.settings = settings
        self.fitness = fitness
        self.maximize = maximize

        self._population: list[Any] = []
        self._population_lock = threading.RLock()
        self._cancelled = threading.Event()
        self._best_solutions: list[Any] = []
        self._best_solutions_lock = threading.Lock()

        # Progress counters, only advanced by this island's own steps
        self.generation = 0
        self.migrants_received = 0

        self.state = IslandState.INITIALISING
        self.state_sink: StateSink | None = None

    @property
    def island_id(self) -> IslandId:
        return self.settings.island_id

    @property
    def population(self) -> list[Any]:
        """Copy of the current population"""
        with self._population_lock:
            return list(self._population)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def best_solutions(self) -> list[Any]:
        """Solutions delivered to this island as aggregator"""
        with self._best_solutions_lock:
            return list(self._best_solutions)

    @abstractmethod
    def initial_population(self) -> Iterable[Any]:
        """Create the first generation"""

    @abstractmethod
    def evolve(self, population: list[Any]) -> Iterable[Any]:
        """Produce the next generation from the current one"""

    def pre_generation(self) -> None:
        """Build the initial population; called once before the first step"""
        with self._population_lock:
            self._population = list(self.initial_population())
        logger.debug(f"Island {self.island_id} initialised with {len(self._population)} individuals")

    def step_one_generation(self) -> None:
        """Run one evolutionary step synchronously (no-op once cancelled)"""
        if self.is_cancelled:
            return
        with self._population_lock:
            self._population = list(self.evolve(list(self._population)))
            self.generation += 1

    def receive_migrants(self, batch: Sequence[Any]) -> None:
        batch = list(batch)
        if not batch:
            return
        with self._population_lock:
            self._population.extend(batch)
            self.migrants_received += len(batch)
        logger.debug(f"Island {self.island_id} received {len(batch)} migrants")

    def state_info(self) -> StateInfo:
        best = self.best_individuals(1)
        return StateInfo(
            island_id=str(self.island_id),
            state=self.state,
            generation=self.generation,
            best_fitness=self.fitness(best[0]) if best else None,
            extra={"population_size": len(self.population)},
        )

    def report_state(self, state: IslandState, info: StateInfo | None = None) -> None:
        self.state = IslandState(state)
        if info is None:
            info = self.state_info()
        info.state = self.state
        if self.state_sink is not None:
            self.state_sink(self.island_id, self.state, info)

    def cancel(self) -> None:
        logger.info(f"Island {self.island_id} cancelled")
        self._cancelled.set()

    def collect_best_solutions(self, solutions: Iterable[Any]) -> None:
        solutions = list(solutions)
        with self._best_solutions_lock:
            self._best_solutions.extend(solutions)
        logger.info(f"Island {self.island_id} collected {len(solutions)} best solutions")

    def best_individuals(self, k: int = 1) -> list[Any]:
        """The ``k`` fittest individuals of the current population"""
        ranked = sorted(self.population, key=self.fitness, reverse=self.maximize)
        return ranked[:k]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.island_id})"
