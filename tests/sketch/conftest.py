"""Shared fixtures for sketch tests."""

from __future__ import annotations

import random

import pytest

from hyperloglog_lite.sketch.sketch import Sketch

SEED = 42


def filled(keys, precision: int = 10, **kwargs) -> Sketch:
    sketch = Sketch(precision, **kwargs)
    sketch.insert_many(keys)
    return sketch


@pytest.fixture
def sketch_factory():
    return filled


@pytest.fixture
def rng() -> random.Random:
    return random.Random(SEED)
