"""Shared fixtures for estimation tests."""

from __future__ import annotations

import pytest

from hyperloglog_lite.estimation.histogram import RegisterHistogram
from hyperloglog_lite.estimation.tables import PrecisionTable, get_correction_tables

P = 10
M = 1 << P


@pytest.fixture
def table10() -> PrecisionTable:
    return get_correction_tables()[P]


def make_histogram(counts: dict[int, int], precision: int = P, width: int = 5) -> RegisterHistogram:
    """Histogram from {value: count}; zeros fill the remaining registers."""
    m = 1 << precision
    dense = [0] * (max(counts, default=0) + 1)
    for value, count in counts.items():
        dense[value] = count
    dense[0] = m - sum(c for v, c in counts.items() if v != 0)
    return RegisterHistogram.from_counts(dense, precision, width, 32)


@pytest.fixture
def histogram_factory():
    return make_histogram
