"""
Emigrant selection: which individuals an island sends to its neighbour.

All selectors return distinct members of the population (never copies, never
duplicates) and leave the population itself untouched.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


class EmigrantSelection(str, Enum):
    BEST_K = "best_k"
    RANK = "rank"
    RANDOM_K = "random_k"


def get_fitness(individual: Any) -> float:
    """Default fitness projection: ``individual.fitness`` or ``individual["fitness"]``"""
    if isinstance(individual, Mapping):
        return float(individual["fitness"])
    return float(individual.fitness)


class MigrantSelector(ABC):
    """Base class for emigrant selection strategies"""

    name: EmigrantSelection

    def __init__(
        self,
        fitness: Callable[[Any], float] = get_fitness,
        maximize: bool = True,
        rng: np.random.Generator | None = None,
    ):
        self.fitness = fitness
        self.maximize = maximize
        self.rng = rng if rng is not None else np.random.default_rng()

    def select(self, population: Sequence[Any], k: int) -> list[Any]:
        """
        Pick ``min(k, len(population))`` distinct individuals.

        Returns an empty list for an empty population or a non-positive ``k``.
        """
        candidates = list(population)
        if not candidates or k <= 0:
            return []
        k = min(k, len(candidates))
        indices = self._select_indices(candidates, k)
        return [candidates[i] for i in indices]

    def _ranked_indices(self, candidates: list[Any]) -> list[int]:
        """Indices of candidates ordered best first (stable for ties)"""
        scores = [self.fitness(c) for c in candidates]
        return sorted(
            range(len(candidates)),
            key=lambda i: -scores[i] if self.maximize else scores[i],
        )

    @abstractmethod
    def _select_indices(self, candidates: list[Any], k: int) -> list[int]:
        """Return ``k`` distinct positions into ``candidates``"""


class BestKSelection(MigrantSelector):
    """The ``k`` fittest individuals"""

    name = EmigrantSelection.BEST_K

    def _select_indices(self, candidates: list[Any], k: int) -> list[int]:
        return self._ranked_indices(candidates)[:k]


class RankSelection(MigrantSelector):
    """
    Rank-biased draw without replacement.

    Uses linear ranking: the individual at rank ``r`` (0 = best) of ``n`` is
    weighted ``bias - 2 * (bias - 1) * r / (n - 1)``, so the best individual is
    ``bias`` times as likely as an average one. A bias of 1 is a uniform draw.
    """

    name = EmigrantSelection.RANK

    def __init__(self, *args, rank_bias: float = 1.7, **kwargs):
        super().__init__(*args, **kwargs)
        if not 1.0 <= rank_bias < 2.0:
            raise ValueError(f"rank_bias must be in [1, 2), got {rank_bias}")
        self.rank_bias = rank_bias

    def _select_indices(self, candidates: list[Any], k: int) -> list[int]:
        ranked = self._ranked_indices(candidates)
        n = len(ranked)
        if n == 1:
            return ranked

        ranks = np.arange(n, dtype=float)
        weights = self.rank_bias - 2.0 * (self.rank_bias - 1.0) * ranks / (n - 1)
        picks = self.rng.choice(n, size=k, replace=False, p=weights / weights.sum())
        return [ranked[int(r)] for r in picks]


class RandomKSelection(MigrantSelector):
    """Uniform draw without replacement"""

    name = EmigrantSelection.RANDOM_K

    def _select_indices(self, candidates: list[Any], k: int) -> list[int]:
        return [int(i) for i in self.rng.choice(len(candidates), size=k, replace=False)]


_SELECTORS: dict[EmigrantSelection, type[MigrantSelector]] = {
    EmigrantSelection.BEST_K: BestKSelection,
    EmigrantSelection.RANK: RankSelection,
    EmigrantSelection.RANDOM_K: RandomKSelection,
}


def create_selector(
    kind: str | EmigrantSelection,
    fitness: Callable[[Any], float] = get_fitness,
    maximize: bool = True,
    rank_bias: float = 1.7,
    seed: int | None = None,
) -> MigrantSelector:
    """Build the selector named in the configuration"""
    try:
        kind = EmigrantSelection(str(getattr(kind, "value", kind)).lower())
    except ValueError:
        raise ValueError(f"Unknown emigrant selection: {kind!r}") from None

    rng = np.random.default_rng(seed)
    if kind == EmigrantSelection.RANK:
        return RankSelection(fitness, maximize, rng, rank_bias=rank_bias)
    return _SELECTORS[kind](fitness, maximize, rng)
