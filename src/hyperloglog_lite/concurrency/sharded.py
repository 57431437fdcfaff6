"""Parallel construction: independent shards folded by union.

Union is associative and commutative at the register level, so any
partition of the input into shards, built in any order and folded in
any grouping, yields exactly the registers of one sketch fed everything.
No locking is needed: each shard has a single writer and union reads
two sketches without modifying either.

Threads share the GIL, so build_sharded() does not speed up pure-Python
hashing; it exists for callers whose element iterators block on I/O and
as the reference fold for process-based fan-out.
"""
from __future__ import annotations

import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Sequence

from hyperloglog_lite.domain.config import SketchConfig
from hyperloglog_lite.domain.types import Element
from hyperloglog_lite.sketch.sketch import Sketch

log = logging.getLogger(__name__)


def union_all(sketches: Iterable[Sketch]) -> Sketch:
    """Union of every sketch; inputs are left unmodified.

    Raises ValueError for an empty input and ConfigurationMismatch if
    any two sketches are incompatible.
    """
    sketches = list(sketches)
    if not sketches:
        raise ValueError("union_all() needs at least one sketch")
    if len(sketches) == 1:
        return sketches[0].copy()
    return functools.reduce(Sketch.union, sketches)


def partition(elements: Iterable[Element], num_shards: int) -> list[list[Element]]:
    """Deal elements round-robin into num_shards lists."""
    if num_shards < 1:
        raise ValueError(f"num_shards must be >= 1, got {num_shards}")
    shards: list[list[Element]] = [[] for _ in range(num_shards)]
    for i, element in enumerate(elements):
        shards[i % num_shards].append(element)
    return shards


def build_sharded(
    elements: Iterable[Element],
    num_shards: int,
    precision: int,
    register_width: int | None = None,
    hash_seed: int = 0,
    config: SketchConfig | None = None,
    max_workers: int | None = None,
) -> Sketch:
    """Build one sketch per shard in a thread pool and fold them.

    The result's registers equal those of Sketch.from_iterable(elements, ...)
    with the same parameters.
    """
    shards = partition(elements, num_shards)
    log.debug(
        "Building %d shards (sizes %s) with max_workers=%s",
        num_shards, [len(s) for s in shards], max_workers,
    )

    def build(shard: Sequence[Element]) -> Sketch:
        return Sketch.from_iterable(shard, precision, register_width, hash_seed, config)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        built = list(executor.map(build, shards))
    return union_all(built)
