"""
Tests for the sequential meta-mode driver
"""

import unittest
from unittest.mock import MagicMock

from archipelago.config import Config, IslandsConfig
from archipelago.identity import IslandId
from archipelago.logging_utils import current_island
from archipelago.meta import MaxIterations, MetaDriver, TargetFitness
from archipelago.state import IslandState
from archipelago.worker import IslandWorker, WorkerSettings


class ListIsland(IslandWorker):
    """Island seeded with a fixed list; a generation keeps the population as is"""

    def __init__(self, settings, individuals=()):
        super().__init__(settings)
        self.individuals = list(individuals)
        self.contexts = []

    def initial_population(self):
        return list(self.individuals)

    def evolve(self, population):
        self.contexts.append(current_island.get())
        return population


class ImprovingIsland(ListIsland):
    """Every generation raises the fitness of each individual by one"""

    def evolve(self, population):
        return [{"name": p["name"], "fitness": p["fitness"] + 1} for p in population]


class FailingIsland(ListIsland):
    def evolve(self, population):
        raise RuntimeError("search exploded")


def individual(name, fitness):
    return {"name": name, "fitness": fitness}


def make_config(num_clients=2, frequency=1, rate=2, **kwargs):
    return Config(
        max_iterations=10,
        islands=IslandsConfig(
            num_clients=num_clients,
            client_prefix="P",
            migrants_iteration_frequency=frequency,
            migrants_communication_rate=rate,
            **kwargs,
        ),
    )


class TestMetaDriver(unittest.TestCase):
    def setUp(self):
        self.x = individual("x", 3.0)
        self.y = individual("y", 2.0)
        self.z = individual("z", 1.0)
        self.populations = {
            0: [self.x, self.y, self.z],
            1: [individual("a", 0.5), individual("b", 0.1)],
        }

    def factory(self, cls=ListIsland):
        return lambda settings: cls(settings, self.populations.get(settings.island_id.index, []))

    def test_migration_round(self):
        driver = MetaDriver(make_config(), self.factory())
        driver.initialize_search()
        driver.evolve()

        receiver = driver.workers[1].population
        self.assertEqual(receiver[-2:], [self.x, self.y])
        self.assertEqual(driver.migrations, 1)
        self.assertEqual(driver.current_index, 1)
        self.assertEqual(driver.iteration, 1)

    def test_first_evolve_migrates_without_explicit_initialisation(self):
        driver = MetaDriver(make_config(), self.factory())
        driver.evolve()
        self.assertEqual(driver.workers[1].population[-2:], [self.x, self.y])
        self.assertEqual(driver.topology.get_current_state("P1x"), IslandState.SEARCHING)

    def test_max_iterations_counts_driver_turns(self):
        driver = MetaDriver(make_config(), self.factory())
        driver.generate_solution()
        self.assertEqual(driver.iteration, 10)
        self.assertEqual([w.generation for w in driver.workers], [5, 5])

    def test_distributed_form_aggregator_id(self):
        listener = MagicMock()
        driver = MetaDriver(
            make_config(aggregator_id="P1"), self.factory(), stopping_conditions=[MaxIterations(2)]
        )
        driver.add_listener(listener)
        population = driver.generate_solution()
        self.assertTrue(population)
        self.assertTrue(driver.workers[1].best_solutions)
        self.assertEqual(driver.workers[0].best_solutions, [])
        listener.search_finished.assert_called_once_with(driver)

    def test_invalid_aggregator_id_does_not_abort_run(self):
        listener = MagicMock()
        driver = MetaDriver(
            make_config(aggregator_id="Q1"), self.factory(), stopping_conditions=[MaxIterations(2)]
        )
        driver.add_listener(listener)
        self.assertTrue(driver.generate_solution())
        listener.search_finished.assert_called_once_with(driver)

    def test_islands_get_meta_ids_and_register(self):
        driver = MetaDriver(make_config(), self.factory())
        self.assertEqual(
            [w.island_id for w in driver.workers], [IslandId("P", 0, "x"), IslandId("P", 1, "x")]
        )
        self.assertEqual(
            list(driver.topology.clients), [IslandId("P", 0, "x"), IslandId("P", 1, "x")]
        )
        self.assertEqual(driver.topology.get_current_state("P1x"), IslandState.INITIALISING)
        self.assertEqual(driver.workers[0].settings.algorithm, "MOSA")

    def test_no_migration_off_frequency(self):
        driver = MetaDriver(make_config(frequency=2), self.factory())
        driver.initialize_search()
        driver.evolve()
        self.assertEqual(driver.migrations, 0)
        self.assertEqual(len(driver.workers[1].population), 2)

    def test_empty_island_still_advances(self):
        self.populations[0] = []
        driver = MetaDriver(make_config(), self.factory())
        driver.initialize_search()
        driver.evolve()
        self.assertEqual(driver.current_index, 1)
        self.assertEqual(driver.workers[0].generation, 0)
        self.assertEqual(driver.migrations, 0)

    def test_snapshot_and_config_unchanged(self):
        config = make_config(num_clients=3, different_criteria_per_client=True)
        before = config.to_dict()
        driver = MetaDriver(config, self.factory())
        snapshot = driver.snapshot
        driver.initialize_search()
        for _ in range(5):
            driver.evolve()
        self.assertEqual(driver.snapshot, snapshot)
        self.assertEqual(snapshot, (config.algorithm, tuple(config.criteria)))
        self.assertEqual(config.to_dict(), before)

    def test_different_criteria_per_client(self):
        config = make_config(num_clients=3, different_criteria_per_client=True)
        driver = MetaDriver(config, self.factory())
        chunks = [w.settings.criteria for w in driver.workers]
        self.assertEqual([len(c) for c in chunks], [3, 3, 2])
        self.assertEqual(set().union(*chunks), set(config.criteria))

    def test_same_criteria_by_default(self):
        config = make_config(num_clients=2)
        driver = MetaDriver(config, self.factory())
        for worker in driver.workers:
            self.assertEqual(worker.settings.criteria, tuple(config.criteria))

    def test_island_context_set_during_step_and_reset(self):
        driver = MetaDriver(make_config(), self.factory())
        driver.initialize_search()
        driver.evolve()
        driver.evolve()
        self.assertEqual(driver.workers[0].contexts, ["P0x"])
        self.assertEqual(driver.workers[1].contexts, ["P1x"])
        self.assertEqual(current_island.get(), "-")

    def test_context_reset_when_step_raises(self):
        driver = MetaDriver(make_config(), self.factory(FailingIsland))
        driver.initialize_search()
        with self.assertRaises(RuntimeError):
            driver.evolve()
        self.assertEqual(current_island.get(), "-")

    def test_generate_solution(self):
        listener = MagicMock()
        driver = MetaDriver(
            make_config(), self.factory(ImprovingIsland), stopping_conditions=[MaxIterations(4)]
        )
        driver.add_listener(listener)
        population = driver.generate_solution()

        self.assertEqual(driver.iteration, 4)
        self.assertEqual(listener.iteration.call_count, 4)
        listener.search_finished.assert_called_once_with(driver)
        self.assertEqual(len(population), sum(len(w.population) for w in driver.workers))
        states = driver.topology.get_current_states()
        self.assertTrue(all(state == IslandState.FINISHED for state in states.values()))
        # Aggregator is island 0 and holds every island's best
        self.assertTrue(driver.workers[0].best_solutions)

    def test_generate_solution_evaluates_final_population(self):
        evaluate = MagicMock()
        driver = MetaDriver(
            make_config(), self.factory(), stopping_conditions=[MaxIterations(2)], evaluate=evaluate
        )
        population = driver.generate_solution()
        self.assertEqual(evaluate.call_count, len(population))

    def test_target_fitness(self):
        driver = MetaDriver(
            make_config(), self.factory(ImprovingIsland), stopping_conditions=[TargetFitness(5.0)]
        )
        driver.generate_solution()
        self.assertGreaterEqual(driver.workers[0].state_info().best_fitness, 5.0)
        self.assertLess(driver.iteration, 10)

    def test_crash_reports_state(self):
        driver = MetaDriver(make_config(), self.factory(FailingIsland))
        with self.assertRaises(RuntimeError):
            driver.generate_solution()
        self.assertEqual(driver.topology.get_current_state("P0x"), IslandState.CRASHED)

    def test_cancel(self):
        driver = MetaDriver(make_config(), self.factory())
        driver.cancel()
        self.assertTrue(driver.is_finished())
        driver.generate_solution()
        self.assertEqual(driver.iteration, 0)
        self.assertEqual(driver.topology.get_current_state("P0x"), IslandState.CANCELLED)

    def test_listener_failure_does_not_stop_run(self):
        listener = MagicMock()
        listener.iteration.side_effect = RuntimeError("listener bug")
        driver = MetaDriver(make_config(), self.factory(), stopping_conditions=[MaxIterations(3)])
        driver.add_listener(listener)
        driver.generate_solution()
        self.assertEqual(driver.iteration, 3)

    def test_summary(self):
        driver = MetaDriver(make_config(), self.factory(), stopping_conditions=[MaxIterations(2)])
        driver.generate_solution()
        summary = driver.get_summary()
        self.assertEqual(summary["iterations"], 2)
        self.assertEqual(len(summary["islands"]), 2)
        self.assertIn("P0x: FINISHED", summary["states"])


if __name__ == "__main__":
    unittest.main()
