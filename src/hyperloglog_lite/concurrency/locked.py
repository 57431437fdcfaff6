"""Single-lock wrapper for a sketch shared between threads.

Packed registers share storage words, so two threads inserting into one
Sketch can lose updates even when they touch different registers. This
wrapper serializes every operation on one threading.Lock. It is the
simple option; for heavy ingest prefer one sketch per thread folded
with union_all(), which needs no lock at all.
"""
from __future__ import annotations

import threading
from typing import Iterable

from hyperloglog_lite.domain.types import Element
from hyperloglog_lite.sketch.sketch import Sketch


class LockedSketch:
    """Sketch guarded by one coarse lock.

    Every method acquires the same lock. snapshot() hands out a private
    copy that can be estimated, serialized or unioned without holding it.
    """

    def __init__(self, sketch: Sketch) -> None:
        self._sketch = sketch
        self._lock = threading.Lock()

    def insert(self, element: Element) -> bool:
        with self._lock:
            return self._sketch.insert(element)

    def insert_many(self, elements: Iterable[Element]) -> int:
        # Drain the iterator before taking the lock
        batch = list(elements)
        with self._lock:
            return self._sketch.insert_many(batch)

    def estimate(self) -> float:
        with self._lock:
            return self._sketch.estimate()

    def merge_in_place(self, other: Sketch) -> None:
        with self._lock:
            self._sketch.merge_in_place(other)

    def snapshot(self) -> Sketch:
        with self._lock:
            return self._sketch.copy()
