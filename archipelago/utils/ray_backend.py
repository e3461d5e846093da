"""
Ray transport for distributed islands.

The coordinator and every island run as Ray actors. Islands are published as
named actors (the actor name is the island id), which makes Ray's actor
directory the name service the coordinator resolves endpoints from.
"""

import logging
import random
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from archipelago.config import Config
from archipelago.criteria import parse_criteria, partition_criteria
from archipelago.exceptions import RegistrationError
from archipelago.identity import IslandId
from archipelago.state import IslandState, StateInfo
from archipelago.worker import WorkerSettings

logger = logging.getLogger(__name__)

COORDINATOR_NAME = "archipelago-coordinator"


def _import_ray():
    # Lazy import to avoid hard dependency
    try:
        import ray
    except ImportError:
        raise ImportError(
            "Ray is not installed. Please install with: pip install 'archipelago[distributed]'"
        ) from None
    return ray


class RemoteEndpoint:
    """
    Wraps an island actor handle to look like a local ``WorkerEndpoint``.

    Calls block until the island answers or ``timeout`` seconds pass; errors
    (including timeouts) propagate so the coordinator can log and drop.
    ``cancel`` is fire-and-forget.
    """

    def __init__(self, handle: Any, timeout: float | None = 30.0, name: str | None = None):
        self.ray = _import_ray()
        self.handle = handle
        self.timeout = timeout
        self.name = name

    def _call(self, method: str, *args):
        ref = getattr(self.handle, method).remote(*args)
        return self.ray.get(ref, timeout=self.timeout)

    def receive_migrants(self, batch: Sequence[Any]) -> None:
        self._call("receive_migrants", list(batch))

    def collect_best_solutions(self, solutions: Iterable[Any]) -> None:
        self._call("collect_best_solutions", list(solutions))

    def report_state(self, state: IslandState, info: StateInfo | None = None) -> None:
        self._call("report_state", state, info)

    def cancel(self) -> None:
        self.handle.cancel.remote()

    def __repr__(self) -> str:
        return f"RemoteEndpoint({self.name or self.handle})"


class RayNameService:
    """Resolves island ids to named Ray actors"""

    def __init__(self, namespace: str | None = None, timeout: float | None = 30.0):
        self.ray = _import_ray()
        self.namespace = namespace
        self.timeout = timeout

    def bind(self, island_id: IslandId | str, endpoint: Any) -> None:
        # Named actors are published by Ray when they are created
        logger.debug(f"Island {island_id} published as a named actor")

    def lookup(self, island_id: IslandId | str) -> RemoteEndpoint:
        try:
            handle = self.ray.get_actor(str(island_id), namespace=self.namespace)
        except ValueError as e:
            raise RegistrationError(island_id, str(e)) from e
        return RemoteEndpoint(handle, timeout=self.timeout, name=str(island_id))

    def unbind(self, island_id: IslandId | str) -> None:
        pass


class RemoteCoordinator:
    """Island-side proxy for the coordinator actor"""

    def __init__(self, handle: Any, timeout: float | None = 30.0):
        self.ray = _import_ray()
        self.handle = handle
        self.timeout = timeout

    def _call(self, method: str, *args):
        ref = getattr(self.handle, method).remote(*args)
        return self.ray.get(ref, timeout=self.timeout)

    def register_client(self, island_id: str) -> bool:
        return self._call("register_client", island_id)

    def inform_state_change(self, island_id: str, state: IslandState, info: StateInfo | None = None):
        return self._call("inform_state_change", island_id, state, info)

    def migrate(self, island_id: str, batch: Sequence[Any]) -> bool:
        return self._call("migrate", island_id, list(batch))

    def collect_best(self, island_id: str, solutions: Iterable[Any]) -> bool:
        return self._call("collect_best", island_id, list(solutions))

    def report_metric(self, island_id: str, key: str, value: Any) -> None:
        # Telemetry is optional, don't wait for it
        self.handle.report_metric.remote(island_id, key, value)

    def update_property(self, island_id: str, name: str, value: Any) -> None:
        self._call("update_property", island_id, name, value)


class RayIslandFleet:
    """
    Runs a coordinator actor and ``num_clients`` island actors on a Ray cluster.
    """

    def __init__(self, config: Config, worker_factory: Callable, actor_concurrency: int = 4):
        self.config = config
        self.worker_factory = worker_factory
        self.ray = _import_ray()
        islands = config.islands

        if not self.ray.is_initialized():
            logger.info("Initializing Ray...")
            self.ray.init(
                address=islands.ray_address,
                namespace=islands.ray_namespace,
                ignore_reinit_error=True,
            )

        config_dict = config.to_dict()
        namespace = islands.ray_namespace
        timeout = islands.remote_call_timeout

        # Coordinator is threaded: calls from different islands run concurrently
        @self.ray.remote(max_concurrency=max(actor_concurrency, islands.num_clients + 1))
        class CoordinatorActor:
            def __init__(self, config_dict):
                from archipelago.coordinator import Coordinator

                self.coordinator = Coordinator(
                    Config.from_dict(config_dict), RayNameService(namespace, timeout)
                )

            def register_client(self, island_id):
                return self.coordinator.register_client(island_id)

            def inform_state_change(self, island_id, state, info=None):
                self.coordinator.inform_state_change(island_id, state, info)

            def migrate(self, island_id, batch):
                return self.coordinator.migrate(island_id, batch)

            def collect_best(self, island_id, solutions):
                return self.coordinator.collect_best(island_id, solutions)

            def report_metric(self, island_id, key, value):
                self.coordinator.report_metric(island_id, key, value)

            def update_property(self, island_id, name, value):
                self.coordinator.update_property(island_id, name, value)

            def get_metrics(self):
                return self.coordinator.get_metrics()

            def get_summary_of_client_statuses(self):
                return self.coordinator.get_summary_of_client_statuses()

            def await_all_clients(self, timeout_s):
                registry = self.coordinator.await_all_clients(timeout_s)
                return None if registry is None else [str(k) for k in registry]

            def cancel_all(self):
                self.coordinator.cancel_all()

        # Threaded so immigrants and cancel requests arrive while run() is busy
        @self.ray.remote(max_concurrency=actor_concurrency)
        class IslandActor:
            def __init__(self, config_dict, worker_factory, settings):
                self.config = Config.from_dict(config_dict)
                self.worker = worker_factory(settings)

            def receive_migrants(self, batch):
                self.worker.receive_migrants(batch)

            def collect_best_solutions(self, solutions):
                self.worker.collect_best_solutions(solutions)

            def report_state(self, state, info=None):
                self.worker.report_state(state, info)

            def cancel(self):
                self.worker.cancel()

            def best_solutions(self):
                return self.worker.best_solutions

            def run(self, max_generations=None):
                import ray

                from archipelago.client import IslandClient

                coordinator = RemoteCoordinator(
                    ray.get_actor(COORDINATOR_NAME, namespace=namespace), timeout
                )
                client = IslandClient(
                    self.worker, coordinator, RayNameService(namespace, timeout), self.config
                )
                if not client.start():
                    return None
                return client.run(max_generations).to_dict()

        self.coordinator = CoordinatorActor.options(
            name=COORDINATOR_NAME, namespace=namespace
        ).remote(config_dict)

        criteria = parse_criteria(config.criteria)
        if islands.num_clients > 1 and islands.different_criteria_per_client:
            chunks = partition_criteria(
                criteria, islands.num_clients, rng=random.Random(config.random_seed)
            )
        else:
            chunks = [criteria] * islands.num_clients

        self.island_ids: list[IslandId] = []
        self.island_actors = []
        for i in range(islands.num_clients):
            island_id = IslandId(islands.client_prefix, i)
            settings = WorkerSettings(
                island_id, config.algorithm, tuple(c.value for c in chunks[i])
            )
            actor = IslandActor.options(name=str(island_id), namespace=namespace).remote(
                config_dict, worker_factory, settings
            )
            self.island_ids.append(island_id)
            self.island_actors.append(actor)

        logger.info(f"Started {islands.num_clients} island actors in namespace {namespace!r}")

    def run(self, max_generations: int | None = None) -> dict[str, dict | None] | None:
        """
        Start every island and wait for all of them to finish.

        Returns:
            Final state information per island, or None if not every island
            registered within ``registration_timeout``
        """
        refs = [actor.run.remote(max_generations) for actor in self.island_actors]

        registered = self.ray.get(
            self.coordinator.await_all_clients.remote(self.config.islands.registration_timeout)
        )
        if registered is None:
            logger.error("Not all islands registered in time, cancelling the fleet")
            self.cancel()
            for ref in refs:
                self.ray.cancel(ref)
            return None

        results = self.ray.get(refs)
        return {str(island_id): result for island_id, result in zip(self.island_ids, results)}

    def cancel(self) -> None:
        """Ask every registered island to stop; does not wait"""
        self.coordinator.cancel_all.remote()

    def best_solutions(self) -> list[Any]:
        """Solutions gathered on the aggregator island"""
        aggregator_id = self.config.islands.aggregator()
        index = self.island_ids.index(aggregator_id)
        return self.ray.get(self.island_actors[index].best_solutions.remote())

    def metrics(self) -> dict[str, dict[str, Any]]:
        return self.ray.get(self.coordinator.get_metrics.remote())

    def summary(self) -> str:
        return self.ray.get(self.coordinator.get_summary_of_client_statuses.remote())

    def shutdown(self) -> None:
        """Shutdown Ray."""
        if self.ray.is_initialized():
            self.ray.shutdown()
