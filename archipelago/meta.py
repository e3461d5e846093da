"""
Sequential meta-mode: N islands time-sliced inside one process.

The meta driver advances one island per iteration, round robin, and moves
emigrants between islands in memory. Each island receives its own
``WorkerSettings`` (identity, algorithm and criteria) at construction, so no
process-wide configuration is touched while islands take turns; the only
ambient state is the island log context, which is reset on every exit path.
"""

import logging
import random
import time
from collections.abc import Callable, Sequence
from typing import Any

from archipelago.config import Config
from archipelago.criteria import parse_criteria, partition_criteria
from archipelago.identity import IslandId
from archipelago.interfaces import SearchListener, StoppingCondition
from archipelago.logging_utils import island_context
from archipelago.selection import MigrantSelector, create_selector
from archipelago.state import IslandState
from archipelago.topology import Topology, create_topology
from archipelago.worker import IslandWorker, WorkerSettings

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[WorkerSettings], IslandWorker]


class MaxIterations:
    """Stop after a fixed number of driver iterations (one island step each)"""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations

    def is_finished(self, driver: "MetaDriver") -> bool:
        return driver.iteration >= self.max_iterations

    def reset(self) -> None:
        pass


class TargetFitness:
    """Stop once any island holds an individual at least as good as ``target``"""

    def __init__(self, target: float):
        self.target = target

    def is_finished(self, driver: "MetaDriver") -> bool:
        for worker in driver.workers:
            best = worker.best_individuals(1)
            if not best:
                continue
            fitness = worker.fitness(best[0])
            if (fitness >= self.target) if worker.maximize else (fitness <= self.target):
                return True
        return False

    def reset(self) -> None:
        pass


class TimeBudget:
    """Stop after ``seconds`` of wall-clock time"""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._start: float | None = None

    def is_finished(self, driver: "MetaDriver") -> bool:
        if self._start is None:
            self._start = time.monotonic()
        return time.monotonic() - self._start >= self.seconds

    def reset(self) -> None:
        self._start = time.monotonic()


class MetaDriver:
    """
    Owns N in-process islands and advances them one generation per turn.

    Args:
        config: Run configuration; never mutated by the driver
        worker_factory: Builds an island from its settings
        topology: Overlay to use (default: built from ``config.islands``)
        selector: Emigrant selection (default: built from ``config.islands``)
        stopping_conditions: Termination oracles (default: ``config.max_iterations``)
        evaluate: Optional fitness evaluation applied to the final population
    """

    def __init__(
        self,
        config: Config,
        worker_factory: WorkerFactory,
        topology: Topology | None = None,
        selector: MigrantSelector | None = None,
        stopping_conditions: Sequence[StoppingCondition] | None = None,
        evaluate: Callable[[Any], Any] | None = None,
    ):
        self.config = config
        islands = config.islands
        self.num_clients = islands.num_clients
        self.rng = random.Random(config.random_seed)

        # Frozen copy of the driver-level settings
        self.snapshot: tuple[str, tuple[str, ...]] = (config.algorithm, tuple(config.criteria))

        criteria = parse_criteria(config.criteria)
        if self.num_clients > 1 and islands.different_criteria_per_client:
            self.criteria_per_client = partition_criteria(
                criteria, self.num_clients, shuffle=True, rng=self.rng
            )
        else:
            self.criteria_per_client = [list(criteria) for _ in range(self.num_clients)]

        self.topology = topology or create_topology(
            islands.topology,
            self.num_clients,
            prefix=islands.client_prefix,
            suffix=islands.meta_suffix,
            seed=config.random_seed,
        )

        self.workers: list[IslandWorker] = []
        for i in range(self.num_clients):
            settings = WorkerSettings(
                island_id=IslandId(islands.client_prefix, i, islands.meta_suffix),
                algorithm=config.sub_algorithm,
                criteria=tuple(c.value for c in self.criteria_per_client[i]),
            )
            with island_context(settings.island_id):
                worker = worker_factory(settings)
                worker.pre_generation()
                worker.state_sink = self.topology.inform_state_change
                self.topology.register_client(settings.island_id, worker)
                worker.report_state(IslandState.INITIALISING)
            self.workers.append(worker)

        self.selector = selector or create_selector(
            islands.emigrant_selection,
            fitness=self.workers[0].fitness,
            maximize=self.workers[0].maximize,
            rank_bias=islands.rank_bias,
            seed=config.random_seed,
        )
        self.stopping_conditions = list(
            stopping_conditions or [MaxIterations(config.max_iterations)]
        )
        self.evaluate = evaluate

        self.current_index = 0
        self.iteration = 0
        self.migrations = 0
        self.population: list[Any] = []
        self.listeners: list[SearchListener] = []
        self._cancelled = False
        self._search_initialised = False

        logger.info(
            f"Initialized meta driver with {self.num_clients} islands "
            f"({self.topology.kind.value} topology, criteria per island: "
            f"{[list(s.criteria) for s in (w.settings for w in self.workers)]})"
        )

    #
    # Listeners and termination
    #

    def add_listener(self, listener: SearchListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: SearchListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _notify(self, event: str) -> None:
        for listener in list(self.listeners):
            try:
                getattr(listener, event)(self)
            except Exception as e:
                logger.warning(f"Search listener {listener!r} failed on {event}: {e}")

    def cancel(self) -> None:
        """Stop the run after the current iteration"""
        self._cancelled = True
        self.topology.cancel_all()

    def is_finished(self) -> bool:
        if self._cancelled or all(w.is_cancelled for w in self.workers):
            return True
        return any(condition.is_finished(self) for condition in self.stopping_conditions)

    #
    # Search
    #

    @property
    def current_worker(self) -> IslandWorker:
        return self.workers[self.current_index]

    def initialize_search(self) -> None:
        """Seed the driver-level population and mark every island as searching"""
        for condition in self.stopping_conditions:
            condition.reset()
        self.population = [ind for w in self.workers for ind in w.best_individuals(1)]
        for worker in self.workers:
            worker.report_state(IslandState.SEARCHING)
        self._search_initialised = True

    def evolve(self) -> None:
        """
        Advance the current island by one generation, migrate, move to the next island.

        Runs ``initialize_search()`` first if it has not run yet.
        """
        if not self._search_initialised:
            self.initialize_search()
        worker = self.current_worker
        with island_context(worker.island_id):
            if worker.population:
                worker.step_one_generation()
                self._migrate(worker)
            else:
                logger.debug(f"Island {worker.island_id} has nothing to optimise")

        self.current_index = (self.current_index + 1) % self.num_clients
        self.iteration += 1

    def _migrate(self, sender: IslandWorker) -> bool:
        frequency = self.config.islands.migrants_iteration_frequency
        if frequency <= 0 or (self.iteration + 1) % frequency != 0:
            return False

        population = sender.population
        if not population:
            return False

        receiver = self.topology.select_receiver(sender.island_id)
        if receiver is None:
            return False

        emigrants = self.selector.select(population, self.config.islands.migrants_communication_rate)
        receiver.receive_migrants(emigrants)
        self.migrations += 1
        logger.debug(f"Island {sender.island_id} sent {len(emigrants)} migrants to {receiver.island_id}")
        return True

    def generate_solution(self) -> list[Any]:
        """
        Run until a stopping condition fires.

        Returns:
            The final meta-population (every island's population)
        """
        logger.info("Executing meta driver search")
        self.initialize_search()

        try:
            while not self.is_finished():
                self.evolve()
                self._notify("iteration")
        except Exception:
            logger.exception(f"Island {self.current_worker.island_id} crashed")
            self.current_worker.report_state(IslandState.CRASHED)
            raise

        self.population = [ind for w in self.workers for ind in w.population]
        if self.evaluate is not None:
            for individual in self.population:
                self.evaluate(individual)

        for worker in self.workers:
            worker.report_state(
                IslandState.CANCELLED if worker.is_cancelled or self._cancelled else IslandState.FINISHED
            )
        self._deliver_best_solutions()

        logger.info(
            f"Meta driver finished after {self.iteration} iterations, "
            f"{self.migrations} migrations, {len(self.population)} individuals"
        )
        self._notify("search_finished")
        return self.population

    def _deliver_best_solutions(self) -> None:
        try:
            aggregator_id = self.config.islands.aggregator(suffix=self.config.islands.meta_suffix)
        except ValueError as e:
            logger.error(f"Best solutions not delivered, invalid aggregator: {e}")
            return
        aggregator = self.topology.get_client_node(aggregator_id)
        if aggregator is None:
            logger.error(f"Aggregator {aggregator_id} is not one of the islands")
            return
        for worker in self.workers:
            aggregator.collect_best_solutions(
                worker.best_individuals(self.config.islands.migrants_communication_rate)
            )

    def get_summary(self) -> dict[str, Any]:
        return {
            "iterations": self.iteration,
            "migrations": self.migrations,
            "islands": [w.state_info().to_dict() for w in self.workers],
            "states": self.topology.get_summary_of_client_statuses(),
        }
