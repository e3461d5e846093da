"""
Overlay topologies deciding which island an island may send migrants to.

A topology also owns the registry of live island endpoints and the last state
each island reported, because the ring overlay needs the latter to skip islands
that stopped searching.
"""

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from types import MappingProxyType
from typing import Any

from archipelago.exceptions import UnknownIslandError
from archipelago.identity import DEFAULT_CLIENT_PREFIX, IslandId, as_island_id
from archipelago.state import IslandState, StateInfo

logger = logging.getLogger(__name__)


class TopologyKind(str, Enum):
    RING = "ring"
    RANDOM = "random"
    HYPERCUBE = "hypercube"


def hypercube_neighbours(num_vertices: int) -> dict[int, tuple[int, ...]]:
    """
    Neighbour sets of a hypercube with ``num_vertices`` vertices.

    Vertex ``i`` is adjacent to every vertex whose index differs from ``i`` in
    exactly one bit.

    >>> hypercube_neighbours(4)
    {0: (1, 2), 1: (0, 3), 2: (0, 3), 3: (1, 2)}
    """
    if num_vertices < 2 or num_vertices & (num_vertices - 1):
        raise ValueError(f"A hypercube needs a power of two vertices, got {num_vertices}")
    dimensions = num_vertices.bit_length() - 1
    return {
        i: tuple(sorted(i ^ (1 << bit) for bit in range(dimensions))) for i in range(num_vertices)
    }


class Topology(ABC):
    """
    Registry of island endpoints plus a neighbour selection rule.

    Registry and state maps are safe to use from several threads. The registry
    keeps insertion order.
    """

    kind: TopologyKind

    def __init__(
        self,
        expected_clients: int,
        prefix: str = DEFAULT_CLIENT_PREFIX,
        suffix: str = "",
        rng: random.Random | None = None,
    ):
        if expected_clients < 1:
            raise ValueError(f"Expected number of islands must be positive, got {expected_clients}")
        self.expected_clients = expected_clients
        self.prefix = prefix
        self.suffix = suffix
        self.rng = rng if rng is not None else random.Random()

        self._clients: dict[IslandId, Any] = {}
        self._clients_changed = threading.Condition()

        # Kept after a crash so the last known state can be inspected
        self._states: dict[IslandId, IslandState] = {}
        self._state_information: dict[IslandId, StateInfo] = {}
        self._state_lock = threading.Lock()

    def _key(self, island_id: IslandId | str) -> IslandId:
        try:
            return as_island_id(island_id, prefix=self.prefix, suffix=self.suffix)
        except ValueError:
            raise UnknownIslandError(island_id) from None

    #
    # Clients
    #

    def register_client(self, island_id: IslandId | str, endpoint: Any) -> None:
        """Install (or replace) an endpoint and wake anyone waiting for the fleet"""
        key = self._key(island_id)
        with self._clients_changed:
            self._clients[key] = endpoint
            self._clients_changed.notify_all()
        logger.debug(f"Registered island {key}")

    def get_client_node(self, island_id: IslandId | str) -> Any | None:
        with self._clients_changed:
            return self._clients.get(self._key(island_id))

    @property
    def clients(self) -> MappingProxyType:
        """Read-only snapshot of the registry"""
        with self._clients_changed:
            return MappingProxyType(dict(self._clients))

    def await_all_clients(self, timeout: float) -> MappingProxyType | None:
        """
        Block until exactly ``expected_clients`` islands registered.

        Returns:
            Read-only view of the registry, or None if ``timeout`` seconds
            elapsed first
        """
        deadline = time.monotonic() + timeout
        with self._clients_changed:
            while len(self._clients) != self.expected_clients:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(
                        f"Only {len(self._clients)}/{self.expected_clients} islands "
                        f"registered within {timeout}s"
                    )
                    return None
                self._clients_changed.wait(remaining)
            return MappingProxyType(dict(self._clients))

    def cancel_all(self) -> None:
        """Ask every registered island to stop; failures are logged, never raised"""
        for island_id, endpoint in self.clients.items():
            try:
                logger.info(f"Trying to cancel island {island_id}")
                endpoint.cancel()
            except Exception as e:
                logger.warning(f"Error while trying to cancel island {island_id}: {e}")

    #
    # States
    #

    def inform_state_change(
        self,
        island_id: IslandId | str,
        state: IslandState,
        info: StateInfo | None = None,
    ) -> StateInfo:
        key = self._key(island_id)
        state = IslandState(state)
        if info is None:
            info = StateInfo(island_id=str(key))
        info.state = state
        with self._state_lock:
            self._states[key] = state
            self._state_information[key] = info
        return info

    def get_current_state(self, island_id: IslandId | str) -> IslandState | None:
        with self._state_lock:
            return self._states.get(self._key(island_id))

    def get_current_states(self) -> dict[IslandId, IslandState]:
        with self._state_lock:
            return dict(self._states)

    def get_current_state_information(self) -> list[StateInfo]:
        with self._state_lock:
            return list(self._state_information.values())

    def get_summary_of_client_statuses(self) -> str:
        states = self.get_current_states()
        if not states:
            return "No island has registered"
        return "\n".join(f"{island_id}: {state.value}" for island_id, state in states.items())

    #
    # Neighbour selection
    #

    def _require_registered(self, sender: IslandId | str) -> tuple[IslandId, dict[IslandId, Any]]:
        key = self._key(sender)
        clients = dict(self.clients)
        if key not in clients:
            raise UnknownIslandError(sender)
        return key, clients

    def select_receiver(self, sender: IslandId | str) -> Any | None:
        """Endpoint of the island ``sender`` should migrate to, or None"""
        receiver_id = self.select_receiver_id(sender)
        if receiver_id is None:
            return None
        return self.get_client_node(receiver_id)

    @abstractmethod
    def select_receiver_id(self, sender: IslandId | str) -> IslandId | None:
        """
        Pick at most one neighbour of ``sender``.

        Raises:
            UnknownIslandError: if ``sender`` is not a registered island
        """


class RingTopology(Topology):
    """Each island sends to the next island (cyclically) that is still searching"""

    kind = TopologyKind.RING

    def select_receiver_id(self, sender: IslandId | str) -> IslandId | None:
        sender_id, clients = self._require_registered(sender)
        n = self.expected_clients
        if sender_id.index >= n:
            raise UnknownIslandError(sender)

        states = self.get_current_states()
        for step in range(1, n):
            candidate = sender_id.with_index((sender_id.index + step) % n)
            if candidate in clients and states.get(candidate) == IslandState.SEARCHING:
                return candidate
        return None


class RandomTopology(Topology):
    """Each island sends to any other registered island, uniformly"""

    kind = TopologyKind.RANDOM

    def select_receiver_id(self, sender: IslandId | str) -> IslandId | None:
        sender_id, clients = self._require_registered(sender)
        candidates = [island_id for island_id in clients if island_id != sender_id]
        if not candidates:
            return None
        return self.rng.choice(candidates)


class HypercubeTopology(Topology):
    """Each island sends to one of its hypercube neighbours, uniformly"""

    kind = TopologyKind.HYPERCUBE
    SUPPORTED_SIZES = (2, 4, 8)

    def __init__(self, expected_clients: int, *args, **kwargs):
        if expected_clients not in self.SUPPORTED_SIZES:
            raise ValueError(
                f"Number of islands not supported by the hypercube topology: {expected_clients} "
                f"(supported: {self.SUPPORTED_SIZES})"
            )
        super().__init__(expected_clients, *args, **kwargs)
        self.neighbours = hypercube_neighbours(expected_clients)

    def select_receiver_id(self, sender: IslandId | str) -> IslandId | None:
        sender_id, clients = self._require_registered(sender)
        if sender_id.index not in self.neighbours:
            raise UnknownIslandError(sender)

        candidates = [
            sender_id.with_index(i)
            for i in self.neighbours[sender_id.index]
            if sender_id.with_index(i) in clients
        ]
        if not candidates:
            return None
        return self.rng.choice(candidates)


_TOPOLOGIES: dict[TopologyKind, type[Topology]] = {
    TopologyKind.RING: RingTopology,
    TopologyKind.RANDOM: RandomTopology,
    TopologyKind.HYPERCUBE: HypercubeTopology,
}


def create_topology(
    kind: str | TopologyKind,
    expected_clients: int,
    prefix: str = DEFAULT_CLIENT_PREFIX,
    suffix: str = "",
    seed: int | None = None,
) -> Topology:
    """Build the topology named in the configuration"""
    try:
        kind = TopologyKind(str(getattr(kind, "value", kind)).lower())
    except ValueError:
        raise ValueError(f"Unknown topology: {kind!r}") from None
    return _TOPOLOGIES[kind](expected_clients, prefix=prefix, suffix=suffix, rng=random.Random(seed))
