"""
Tests for the Ray transport, with Ray itself mocked out
"""

import sys
import unittest
from unittest.mock import MagicMock, patch

from archipelago.config import Config, IslandsConfig
from archipelago.coordinator import Coordinator
from archipelago.exceptions import RegistrationError
from archipelago.identity import IslandId
from archipelago.state import IslandState
from archipelago.utils.ray_backend import (
    COORDINATOR_NAME,
    RayIslandFleet,
    RayNameService,
    RemoteCoordinator,
    RemoteEndpoint,
)


class RayTestCase(unittest.TestCase):
    def setUp(self):
        self.ray = MagicMock()
        self.ray.get.side_effect = lambda ref, timeout=None: ref
        patcher = patch.dict(sys.modules, {"ray": self.ray})
        patcher.start()
        self.addCleanup(patcher.stop)


class TestRemoteEndpoint(RayTestCase):
    def test_calls_block_with_timeout(self):
        handle = MagicMock()
        endpoint = RemoteEndpoint(handle, timeout=2.5, name="ClientNode1")
        endpoint.receive_migrants(iter([1, 2]))

        handle.receive_migrants.remote.assert_called_once_with([1, 2])
        self.ray.get.assert_called_once_with(
            handle.receive_migrants.remote.return_value, timeout=2.5
        )

    def test_cancel_does_not_wait(self):
        handle = MagicMock()
        RemoteEndpoint(handle).cancel()
        handle.cancel.remote.assert_called_once_with()
        self.ray.get.assert_not_called()

    def test_remote_errors_propagate(self):
        self.ray.get.side_effect = TimeoutError("actor unresponsive")
        endpoint = RemoteEndpoint(MagicMock())
        with self.assertRaises(TimeoutError):
            endpoint.collect_best_solutions(["a"])


class TestRayNameService(RayTestCase):
    def test_lookup_resolves_named_actor(self):
        names = RayNameService(namespace="test", timeout=1.0)
        endpoint = names.lookup(IslandId("ClientNode", 2))
        self.ray.get_actor.assert_called_once_with("ClientNode2", namespace="test")
        self.assertIs(endpoint.handle, self.ray.get_actor.return_value)
        self.assertEqual(endpoint.timeout, 1.0)

    def test_lookup_miss(self):
        self.ray.get_actor.side_effect = ValueError("Failed to look up actor")
        with self.assertRaises(RegistrationError):
            RayNameService().lookup("ClientNode9")

    def test_coordinator_drops_failed_remote_delivery(self):
        config = Config(islands=IslandsConfig(num_clients=2))
        coordinator = Coordinator(config, RayNameService())
        self.assertTrue(coordinator.register_client("ClientNode0"))
        self.assertTrue(coordinator.register_client("ClientNode1"))
        for name in ("ClientNode0", "ClientNode1"):
            coordinator.inform_state_change(name, IslandState.SEARCHING)

        self.ray.get.side_effect = TimeoutError()
        self.assertFalse(coordinator.migrate("ClientNode0", ["migrant"]))
        self.assertEqual(coordinator.migrations_dropped, 1)


class TestRemoteCoordinator(RayTestCase):
    def test_forwards_calls(self):
        handle = MagicMock()
        handle.register_client.remote.return_value = True
        coordinator = RemoteCoordinator(handle, timeout=3.0)
        self.assertTrue(coordinator.register_client("ClientNode0"))
        coordinator.migrate("ClientNode0", ("a", "b"))
        handle.migrate.remote.assert_called_once_with("ClientNode0", ["a", "b"])

    def test_metrics_are_fire_and_forget(self):
        handle = MagicMock()
        RemoteCoordinator(handle).report_metric("ClientNode0", "generations", 3)
        handle.report_metric.remote.assert_called_once_with("ClientNode0", "generations", 3)
        self.ray.get.assert_not_called()


class TestRayIslandFleet(RayTestCase):
    def setUp(self):
        super().setUp()
        self.ray.is_initialized.return_value = False
        self.config = Config(islands=IslandsConfig(num_clients=3, registration_timeout=0.5))
        # Both actor classes come out of the same mocked decorator
        self.actor_class = self.ray.remote.return_value.return_value

    def test_creates_named_actors(self):
        RayIslandFleet(self.config, MagicMock())
        self.ray.init.assert_called_once()
        names = [c.kwargs["name"] for c in self.actor_class.options.call_args_list]
        self.assertEqual(names, [COORDINATOR_NAME, "ClientNode0", "ClientNode1", "ClientNode2"])

    def test_run_cancels_when_barrier_fails(self):
        fleet = RayIslandFleet(self.config, MagicMock())
        self.ray.get.side_effect = lambda ref, timeout=None: None
        self.assertIsNone(fleet.run(5))
        fleet.coordinator.cancel_all.remote.assert_called_once_with()
        self.assertEqual(self.ray.cancel.call_count, 3)

    def test_missing_ray(self):
        with patch.dict(sys.modules, {"ray": None}):
            with self.assertRaises(ImportError):
                RayIslandFleet(self.config, MagicMock())


if __name__ == "__main__":
    unittest.main()
