"""
Search criteria and how they are spread across islands
"""

import logging
import math
import random
from collections.abc import Sequence
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Criterion(str, Enum):
    """Coverage criteria an island can optimise for"""

    LINE = "LINE"
    BRANCH = "BRANCH"
    EXCEPTION = "EXCEPTION"
    WEAKMUTATION = "WEAKMUTATION"
    OUTPUT = "OUTPUT"
    METHOD = "METHOD"
    METHODNOEXCEPTION = "METHODNOEXCEPTION"
    CBRANCH = "CBRANCH"
    STRONGMUTATION = "STRONGMUTATION"
    STATEMENT = "STATEMENT"


DEFAULT_CRITERIA = [
    Criterion.LINE,
    Criterion.BRANCH,
    Criterion.EXCEPTION,
    Criterion.WEAKMUTATION,
    Criterion.OUTPUT,
    Criterion.METHOD,
    Criterion.METHODNOEXCEPTION,
    Criterion.CBRANCH,
]


def parse_criteria(values: Sequence[Any]) -> list[Criterion]:
    """Convert config strings (case-insensitive) into criteria"""
    criteria = []
    for value in values:
        if isinstance(value, Criterion):
            criteria.append(value)
        else:
            try:
                criteria.append(Criterion(str(value).upper()))
            except ValueError:
                raise ValueError(f"Unknown criterion: {value!r}") from None
    return criteria


def split_array(items: Sequence[T], num_chunks: int) -> list[list[T]]:
    """
    Split a sequence into exactly ``num_chunks`` non-empty consecutive chunks.

    The first ``num_chunks - 1`` chunks get ``ceil(len / num_chunks)`` items
    whenever that still leaves something for the last chunk; otherwise they
    get ``floor(len / num_chunks)`` items and the last chunk takes the rest.

    >>> split_array("ABCDE", 3)
    [['A', 'B'], ['C', 'D'], ['E']]
    >>> split_array("ABCD", 3)
    [['A'], ['B'], ['C', 'D']]

    Raises:
        ValueError: if ``num_chunks < 1`` or there are fewer items than chunks
    """
    items = list(items)
    if num_chunks < 1:
        raise ValueError(f"Number of chunks must be positive, got {num_chunks}")
    if len(items) < num_chunks:
        raise ValueError(f"Cannot split {len(items)} items into {num_chunks} non-empty chunks")

    chunk_size = math.ceil(len(items) / num_chunks)
    if chunk_size * (num_chunks - 1) >= len(items):
        chunk_size = len(items) // num_chunks

    chunks = [items[i * chunk_size : (i + 1) * chunk_size] for i in range(num_chunks - 1)]
    chunks.append(items[(num_chunks - 1) * chunk_size :])
    return chunks


def partition_criteria(
    criteria: Sequence[Criterion],
    num_clients: int,
    shuffle: bool = True,
    rng: random.Random | None = None,
) -> list[list[Criterion]]:
    """
    Give every island its own share of the criteria.

    EXCEPTION cannot steer a search on its own, so a chunk holding only
    EXCEPTION is widened to ``[BRANCH, EXCEPTION]``.
    """
    pool = list(criteria)
    if shuffle:
        (rng or random).shuffle(pool)

    chunks = split_array(pool, num_clients)
    for k, chunk in enumerate(chunks):
        if chunk == [Criterion.EXCEPTION]:
            chunks[k] = [Criterion.BRANCH, Criterion.EXCEPTION]
            logger.debug(f"Island {k} only had EXCEPTION, adding BRANCH as helper criterion")
    return chunks
