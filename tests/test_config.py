"""
Tests for configuration loading
"""

import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

import yaml

from archipelago.config import Config, IslandsConfig, load_config
from archipelago.identity import IslandId


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_defaults(self):
        config = Config()
        self.assertEqual(config.islands.topology, "ring")
        self.assertEqual(config.algorithm, "DYNAMOSA")
        self.assertEqual(config.sub_algorithm, "MOSA")
        self.assertEqual(config.islands.aggregator(), IslandId("ClientNode", 0))
        self.assertTrue(config.islands.migration_enabled)

    def test_yaml_round_trip(self):
        config = Config(max_iterations=7, islands=IslandsConfig(topology="hypercube", num_clients=8))
        path = os.path.join(self.test_dir, "config.yaml")
        config.to_yaml(path)
        loaded = Config.from_yaml(path)
        self.assertEqual(loaded.to_dict(), config.to_dict())

    def test_partial_yaml(self):
        path = os.path.join(self.test_dir, "partial.yaml")
        with open(path, "w") as f:
            yaml.safe_dump(
                {
                    "max_iterations": 3,
                    "criteria": ["LINE", "BRANCH"],
                    "islands": {"topology": "RANDOM", "migrants_communication_rate": 1},
                    "worker": {"genome_length": 8},
                },
                f,
            )
        config = load_config(path)
        self.assertEqual(config.max_iterations, 3)
        self.assertEqual(config.criteria, ["LINE", "BRANCH"])
        self.assertEqual(config.islands.topology, "random")
        self.assertEqual(config.islands.num_clients, 4)
        self.assertEqual(config.worker.genome_length, 8)
        self.assertEqual(config.worker.population_size, 50)

    def test_missing_file_gives_defaults(self):
        config = load_config(os.path.join(self.test_dir, "missing.yaml"))
        self.assertEqual(config.to_dict(), Config().to_dict())

    def test_ray_address_from_environment(self):
        with patch.dict(os.environ, {"ARCHIPELAGO_RAY_ADDRESS": "ray://head:10001"}):
            config = load_config()
        self.assertEqual(config.islands.ray_address, "ray://head:10001")

    def test_validation(self):
        with self.assertRaises(ValueError):
            IslandsConfig(topology="star")
        with self.assertRaises(ValueError):
            IslandsConfig(emigrant_selection="roulette")
        with self.assertRaises(ValueError):
            IslandsConfig(num_clients=0)
        with self.assertRaises(ValueError):
            IslandsConfig(migrants_iteration_frequency=-1)
        with self.assertRaises(ValueError):
            IslandsConfig(migrants_communication_rate=0)

    def test_migration_disabled(self):
        self.assertFalse(IslandsConfig(migrants_iteration_frequency=0).migration_enabled)

    def test_configured_aggregator(self):
        islands = IslandsConfig(aggregator_id="ClientNode2x")
        self.assertEqual(islands.aggregator(suffix="x"), IslandId("ClientNode", 2, "x"))

    def test_aggregator_accepts_either_form(self):
        distributed = IslandsConfig(aggregator_id="ClientNode1")
        meta = IslandsConfig(aggregator_id="ClientNode1x")
        for islands in (distributed, meta):
            self.assertEqual(islands.aggregator(suffix="x"), IslandId("ClientNode", 1, "x"))
            self.assertEqual(islands.aggregator(), IslandId("ClientNode", 1))
        with self.assertRaises(ValueError):
            IslandsConfig(aggregator_id="Other1").aggregator()


if __name__ == "__main__":
    unittest.main()
