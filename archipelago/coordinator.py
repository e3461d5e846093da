"""
Central coordinator for distributed islands.

Islands call the coordinator to register, report state changes, hand over
migrants and deliver their best solutions; the coordinator routes migrants
through the configured topology. Every call may arrive from a different thread
(one per remote invocation), so all shared maps are guarded.

Migration and aggregation are best effort: a failure on the receiving side is
logged and the batch dropped, never retried.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from archipelago.config import Config
from archipelago.exceptions import UnknownIslandError
from archipelago.identity import IslandId
from archipelago.interfaces import NameService, StateListener
from archipelago.state import IslandState, StateInfo
from archipelago.topology import Topology, create_topology

logger = logging.getLogger(__name__)


class Coordinator:
    """Registry, state tracking, migration routing and fleet lifecycle"""

    def __init__(
        self,
        config: Config,
        name_service: NameService,
        topology: Topology | None = None,
    ):
        self.config = config
        self.name_service = name_service

        islands = config.islands
        self.topology = topology or create_topology(
            islands.topology,
            islands.num_clients,
            prefix=islands.client_prefix,
            seed=config.random_seed,
        )
        self.aggregator_id: IslandId = islands.aggregator(suffix=self.topology.suffix)

        self._listeners: list[StateListener | Callable[[StateInfo], Any]] = []
        self._listeners_lock = threading.Lock()

        # One lock per receiver keeps deliveries to an island in acceptance order
        self._delivery_locks: dict[IslandId, threading.Lock] = {}
        self._delivery_locks_guard = threading.Lock()

        self._metrics: dict[str, dict[str, Any]] = {}
        self._metrics_lock = threading.Lock()

        self._counters_lock = threading.Lock()
        self.migrations_delivered = 0
        self.migrations_dropped = 0

        logger.info(
            f"Initialized coordinator for {islands.num_clients} islands "
            f"({self.topology.kind.value} topology, aggregator {self.aggregator_id})"
        )

    #
    # Registration
    #

    def register_client(self, island_id: IslandId | str) -> bool:
        """
        Install an island that already published its endpoint.

        Returns:
            False if the endpoint could not be resolved (the island is then not live)
        """
        try:
            endpoint = self.name_service.lookup(island_id)
        except Exception as e:
            logger.error(f"Error when island {island_id} tries to register: {e}")
            return False
        try:
            self.topology.register_client(island_id, endpoint)
        except UnknownIslandError as e:
            logger.error(f"Island {island_id} cannot join the topology: {e}")
            return False
        logger.info(f"Island {island_id} registered")
        return True

    def await_all_clients(self, timeout: float | None = None):
        if timeout is None:
            timeout = self.config.islands.registration_timeout
        return self.topology.await_all_clients(timeout)

    def cancel_all(self) -> None:
        self.topology.cancel_all()

    #
    # States
    #

    def inform_state_change(
        self, island_id: IslandId | str, state: IslandState | str, info: StateInfo | None = None
    ) -> None:
        info = self.topology.inform_state_change(island_id, IslandState(state), info)
        self._fire_event(info)

    def get_current_state(self, island_id: IslandId | str) -> IslandState | None:
        return self.topology.get_current_state(island_id)

    def get_current_states(self) -> dict[IslandId, IslandState]:
        return self.topology.get_current_states()

    def get_current_state_information(self) -> list[StateInfo]:
        return self.topology.get_current_state_information()

    def get_summary_of_client_statuses(self) -> str:
        return self.topology.get_summary_of_client_statuses()

    def add_listener(self, listener: StateListener | Callable[[StateInfo], Any]) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener | Callable[[StateInfo], Any]) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _fire_event(self, info: StateInfo) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            handler = getattr(listener, "receive_event", listener)
            try:
                handler(info)
            except Exception as e:
                logger.warning(f"State listener failed for {info.island_id}: {e}")

    #
    # Migration and aggregation
    #

    def _delivery_lock(self, receiver_id: IslandId) -> threading.Lock:
        with self._delivery_locks_guard:
            return self._delivery_locks.setdefault(receiver_id, threading.Lock())

    def migrate(self, island_id: IslandId | str, batch: Iterable[Any]) -> bool:
        """
        Hand ``batch`` to one neighbour of ``island_id``.

        Returns:
            True if a receiver accepted the batch

        Raises:
            UnknownIslandError: if ``island_id`` never registered
        """
        batch = list(batch)
        if not batch:
            logger.debug(f"Island {island_id} sent no migrants, skipping")
            return False

        receiver_id = self.topology.select_receiver_id(island_id)
        if receiver_id is None:
            logger.debug(f"No neighbour available for island {island_id}")
            return False
        receiver = self.topology.get_client_node(receiver_id)

        with self._delivery_lock(receiver_id):
            try:
                receiver.receive_migrants(batch)
            except Exception as e:
                with self._counters_lock:
                    self.migrations_dropped += 1
                logger.warning(f"Migration of {len(batch)} from {island_id} to {receiver_id} dropped: {e}")
                return False

        with self._counters_lock:
            self.migrations_delivered += 1
        logger.debug(f"Island {island_id} sent {len(batch)} migrants to {receiver_id}")
        return True

    def collect_best(self, island_id: IslandId | str, solutions: Iterable[Any]) -> bool:
        """
        Forward an island's best solutions to the aggregator island.

        There is no failover: if the aggregator is gone the solutions are lost.
        """
        solutions = list(solutions)
        aggregator = self.topology.get_client_node(self.aggregator_id)
        if aggregator is None:
            logger.error(
                f"{island_id} cannot send best solutions: aggregator {self.aggregator_id} "
                "is not registered"
            )
            return False
        try:
            aggregator.collect_best_solutions(solutions)
        except Exception as e:
            logger.error(f"{island_id} cannot send best solutions to {self.aggregator_id}: {e}")
            return False
        return True

    #
    # Telemetry and properties
    #

    def report_metric(self, island_id: IslandId | str, key: str, value: Any) -> None:
        with self._metrics_lock:
            self._metrics.setdefault(str(island_id), {})[key] = value

    def get_metrics(self, island_id: IslandId | str | None = None) -> dict[str, Any]:
        with self._metrics_lock:
            if island_id is None:
                return {k: dict(v) for k, v in self._metrics.items()}
            return dict(self._metrics.get(str(island_id), {}))

    def update_property(self, island_id: IslandId | str, name: str, value: Any) -> None:
        """
        Change a configuration value on the coordinator side, e.g. ``islands.rank_bias``.

        Raises:
            KeyError: if the property does not exist
        """
        section_name, _, attribute = name.rpartition(".")
        section = getattr(self.config, section_name, None) if section_name else self.config
        if section is None or not hasattr(section, attribute):
            raise KeyError(f"No such configuration property: {name}")
        setattr(section, attribute, value)
        logger.info(f"Island {island_id} set {name} = {value!r}")
