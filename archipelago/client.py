"""
Island-side driver for distributed mode.

An ``IslandClient`` owns one worker and talks to the coordinator on its
behalf: it publishes the worker's endpoint, registers, runs generations,
sends emigrants every ``migrants_iteration_frequency`` generations, reports
state transitions and finally delivers the island's best solutions.

The coordinator may be a local ``Coordinator`` or a remote proxy with the same
method names.
"""

import logging
from typing import Any

from archipelago.config import Config
from archipelago.exceptions import UnknownIslandError
from archipelago.interfaces import NameService
from archipelago.selection import MigrantSelector, create_selector
from archipelago.state import IslandState, StateInfo
from archipelago.worker import IslandWorker

logger = logging.getLogger(__name__)


class IslandClient:
    """Runs one island against a coordinator"""

    def __init__(
        self,
        worker: IslandWorker,
        coordinator: Any,
        name_service: NameService,
        config: Config,
        selector: MigrantSelector | None = None,
        endpoint: Any = None,
    ):
        self.worker = worker
        self.coordinator = coordinator
        self.name_service = name_service
        self.config = config
        # What other parties call; the worker itself unless a remote handle is given
        self.endpoint = endpoint if endpoint is not None else worker
        self.selector = selector or create_selector(
            config.islands.emigrant_selection,
            fitness=worker.fitness,
            maximize=worker.maximize,
            rank_bias=config.islands.rank_bias,
            seed=None if config.random_seed is None else config.random_seed + worker.island_id.index,
        )
        self.registered = False
        self.initialised = False
        self.migrations_sent = 0

    @property
    def island_id(self) -> str:
        return str(self.worker.island_id)

    def _forward_state(self, island_id, state: IslandState, info: StateInfo) -> None:
        try:
            self.coordinator.inform_state_change(str(island_id), state, info)
        except Exception as e:
            logger.warning(f"Island {island_id} could not report state {state.value}: {e}")

    def start(self) -> bool:
        """
        Build the first population, publish the endpoint, then register.

        Immigrants delivered right after registration are appended to that
        population.

        Returns:
            Whether the coordinator accepted the registration
        """
        self._initialise()
        self.name_service.bind(self.worker.island_id, self.endpoint)
        self.worker.state_sink = self._forward_state
        self.registered = bool(self.coordinator.register_client(self.island_id))
        if self.registered:
            self.worker.report_state(IslandState.INITIALISING)
        else:
            logger.error(f"Island {self.island_id} failed to register")
        return self.registered

    def run(self, max_generations: int | None = None) -> StateInfo:
        """
        Evolve until ``max_generations`` generations ran or the island is cancelled.

        Returns:
            The final state information of the island
        """
        if max_generations is None:
            max_generations = self.config.max_iterations
        frequency = self.config.islands.migrants_iteration_frequency

        self._initialise()
        self.worker.report_state(IslandState.SEARCHING)
        try:
            while self.worker.generation < max_generations and not self.worker.is_cancelled:
                self.worker.step_one_generation()
                if frequency > 0 and self.worker.generation % frequency == 0:
                    self.migrate()
        except Exception:
            logger.exception(f"Island {self.island_id} crashed at generation {self.worker.generation}")
            self.worker.report_state(IslandState.CRASHED)
            raise

        final_state = IslandState.CANCELLED if self.worker.is_cancelled else IslandState.FINISHED
        self.worker.report_state(final_state)
        self._report_metrics()
        self.deliver_best_solutions()
        return self.worker.state_info()

    def _initialise(self) -> None:
        if not self.initialised:
            self.worker.pre_generation()
            self.initialised = True

    def migrate(self) -> bool:
        """Send emigrants to the coordinator; failures are logged and ignored"""
        population = self.worker.population
        if not population:
            return False
        emigrants = self.selector.select(population, self.config.islands.migrants_communication_rate)
        try:
            delivered = bool(self.coordinator.migrate(self.island_id, emigrants))
        except UnknownIslandError:
            raise
        except Exception as e:
            logger.warning(f"Island {self.island_id} migration failed: {e}")
            return False
        if delivered:
            self.migrations_sent += 1
        return delivered

    def deliver_best_solutions(self) -> bool:
        solutions = self.worker.best_individuals(self.config.islands.migrants_communication_rate)
        try:
            return bool(self.coordinator.collect_best(self.island_id, solutions))
        except Exception as e:
            logger.warning(f"Island {self.island_id} could not deliver best solutions: {e}")
            return False

    def _report_metrics(self) -> None:
        info = self.worker.state_info()
        metrics = {
            "generations": self.worker.generation,
            "migrants_received": self.worker.migrants_received,
            "migrations_sent": self.migrations_sent,
            "best_fitness": info.best_fitness,
        }
        for key, value in metrics.items():
            try:
                self.coordinator.report_metric(self.island_id, key, value)
            except Exception as e:
                logger.debug(f"Metric {key} from {self.island_id} not recorded: {e}")
