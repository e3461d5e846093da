"""
Reference island: a small generational GA on OneMax bit strings.

Used by the command line runner and the tests to exercise the coordination
layer with a real population; it is not meant as a serious optimiser.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from archipelago.config import Config, WorkerConfig
from archipelago.worker import IslandWorker, WorkerSettings

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Candidate:
    """A bit string and its fitness (number of ones)"""

    genome: np.ndarray
    fitness: float = 0.0
    origin: str = ""
    metadata: dict = field(default_factory=dict)


class OneMaxIsland(IslandWorker):
    """Tournament selection, one-point crossover, bit-flip mutation, elitism of one"""

    def __init__(self, settings: WorkerSettings, worker_config: WorkerConfig, seed: int | None = None):
        super().__init__(settings, maximize=worker_config.maximize)
        self.worker_config = worker_config
        self.rng = np.random.default_rng(seed)
        self.mutation_rate = worker_config.mutation_rate or 1.0 / worker_config.genome_length

    def evaluate(self, candidate: Candidate) -> float:
        candidate.fitness = float(np.count_nonzero(candidate.genome))
        return candidate.fitness

    def initial_population(self) -> list[Candidate]:
        population = []
        for _ in range(self.worker_config.population_size):
            genome = self.rng.integers(0, 2, size=self.worker_config.genome_length, dtype=np.int8)
            candidate = Candidate(genome=genome, origin=str(self.island_id))
            self.evaluate(candidate)
            population.append(candidate)
        return population

    def _better(self, a: Candidate, b: Candidate) -> Candidate:
        if self.maximize:
            return a if a.fitness >= b.fitness else b
        return a if a.fitness <= b.fitness else b

    def _tournament(self, population: list[Candidate]) -> Candidate:
        size = min(self.worker_config.tournament_size, len(population))
        picks = self.rng.choice(len(population), size=size, replace=False)
        winner = population[int(picks[0])]
        for i in picks[1:]:
            winner = self._better(winner, population[int(i)])
        return winner

    def _offspring(self, population: list[Candidate]) -> Candidate:
        first = self._tournament(population)
        second = self._tournament(population)
        length = self.worker_config.genome_length

        if length > 1 and self.rng.random() < self.worker_config.crossover_rate:
            point = int(self.rng.integers(1, length))
            genome = np.concatenate([first.genome[:point], second.genome[point:]])
        else:
            genome = first.genome.copy()

        flips = self.rng.random(length) < self.mutation_rate
        genome = np.where(flips, 1 - genome, genome).astype(np.int8)

        child = Candidate(genome=genome, origin=str(self.island_id))
        self.evaluate(child)
        return child

    def evolve(self, population: list[Candidate]) -> list[Candidate]:
        if not population:
            return population
        elite = population[0]
        for candidate in population[1:]:
            elite = self._better(elite, candidate)

        offspring = [elite]
        while len(offspring) < self.worker_config.population_size:
            offspring.append(self._offspring(population))
        return offspring


def onemax_factory(config: Config):
    """Worker factory giving every island its own reproducible random stream"""

    def build(settings: WorkerSettings) -> OneMaxIsland:
        seed = None
        if config.random_seed is not None:
            seed = config.random_seed + settings.island_id.index
        return OneMaxIsland(settings, config.worker, seed=seed)

    return build
