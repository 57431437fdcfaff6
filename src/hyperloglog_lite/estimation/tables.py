"""Read-only correction tables consumed by the estimators.

For every precision the tables hold:

    raw_estimates / biases      ascending (raw estimate, bias) pairs; the
                                method-of-moments estimator subtracts the
                                bias interpolated at its raw estimate
    beta                        8 coefficients of the LogLog-Beta
                                polynomial in ln(zeros + 1)
    linear_counting_threshold   below this, linear counting wins over the
                                bias-corrected raw estimate

Tables are produced ahead of time by a generator and loaded once per
process through get_correction_tables(). If HLL_CORRECTION_TABLES names
a JSON file, that file is loaded; otherwise the built-in generator in
tablegen.py runs once and its result is cached. Nothing mutates a table
after loading.

The built-in curves are analytic: tablegen.py derives them from a model
of register occupancy under uniform hashing, not from simulated inserts.
They track the empirical HLL++ curves closely but not exactly; point
HLL_CORRECTION_TABLES at an empirically fitted file where that matters.

Interpolation: linear between the two bracketing entries, clamped to the
first/last bias outside the table (numpy.interp semantics).
"""
from __future__ import annotations

import functools
import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

import numpy as np

from hyperloglog_lite.domain.errors import ConfigurationMismatch

log = logging.getLogger(__name__)

TABLES_ENV_VAR = "HLL_CORRECTION_TABLES"
TABLE_FORMAT_VERSION = 1
BETA_TERMS = 8


@dataclass(frozen=True, slots=True)
class PrecisionTable:
    """Correction data for a single precision."""
    precision: int
    raw_estimates: tuple[float, ...]
    biases: tuple[float, ...]
    beta: tuple[float, ...]
    linear_counting_threshold: float

    def __post_init__(self) -> None:
        if len(self.raw_estimates) != len(self.biases):
            raise ValueError(
                f"p={self.precision}: {len(self.raw_estimates)} raw estimates "
                f"but {len(self.biases)} biases"
            )
        if len(self.raw_estimates) < 2:
            raise ValueError(f"p={self.precision}: bias table needs at least 2 entries")
        if any(b <= a for a, b in zip(self.raw_estimates, self.raw_estimates[1:])):
            raise ValueError(f"p={self.precision}: raw estimates must be strictly ascending")
        if len(self.beta) != BETA_TERMS:
            raise ValueError(
                f"p={self.precision}: expected {BETA_TERMS} beta coefficients, "
                f"got {len(self.beta)}"
            )

    def bias(self, raw_estimate: float) -> float:
        """Bias at `raw_estimate`, linearly interpolated between neighbours."""
        return float(np.interp(raw_estimate, self.raw_estimates, self.biases))

    def beta_polynomial(self, zeros: int) -> float:
        """b0*z + b1*zl + b2*zl^2 + ... + b7*zl^7 with zl = ln(z + 1)."""
        zl = math.log1p(zeros)
        acc = 0.0
        for coefficient in reversed(self.beta[1:]):
            acc = (acc + coefficient) * zl
        return self.beta[0] * zeros + acc

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_estimates": list(self.raw_estimates),
            "biases": list(self.biases),
            "beta": list(self.beta),
            "linear_counting_threshold": self.linear_counting_threshold,
        }

    @classmethod
    def from_dict(cls, precision: int, data: Mapping[str, Any]) -> PrecisionTable:
        try:
            return cls(
                precision=precision,
                raw_estimates=tuple(float(v) for v in data["raw_estimates"]),
                biases=tuple(float(v) for v in data["biases"]),
                beta=tuple(float(v) for v in data["beta"]),
                linear_counting_threshold=float(data["linear_counting_threshold"]),
            )
        except KeyError as exc:
            raise ValueError(f"p={precision}: missing table field {exc.args[0]!r}") from None


class CorrectionTables:
    """Immutable mapping precision -> PrecisionTable."""

    __slots__ = ("_tables",)

    def __init__(self, tables: Mapping[int, PrecisionTable]) -> None:
        for precision, table in tables.items():
            if table.precision != precision:
                raise ValueError(
                    f"Table registered under p={precision} is for p={table.precision}"
                )
        self._tables: Mapping[int, PrecisionTable] = MappingProxyType(dict(tables))

    def __getitem__(self, precision: int) -> PrecisionTable:
        try:
            return self._tables[precision]
        except KeyError:
            raise ConfigurationMismatch(
                f"No correction table for precision {precision} "
                f"(available: {sorted(self._tables)})"
            ) from None

    def __contains__(self, precision: object) -> bool:
        return precision in self._tables

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._tables))

    def __len__(self) -> int:
        return len(self._tables)

    @property
    def precisions(self) -> tuple[int, ...]:
        return tuple(sorted(self._tables))

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": TABLE_FORMAT_VERSION,
            "precisions": {
                str(p): self._tables[p].to_dict() for p in sorted(self._tables)
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CorrectionTables:
        version = data.get("format")
        if version != TABLE_FORMAT_VERSION:
            raise ValueError(
                f"Unsupported correction table format {version!r}, "
                f"expected {TABLE_FORMAT_VERSION}"
            )
        tables = {
            int(p): PrecisionTable.from_dict(int(p), entry)
            for p, entry in data["precisions"].items()
        }
        return cls(tables)

    @classmethod
    def load(cls, path: str | Path) -> CorrectionTables:
        with open(path, encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))

    def dump(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, separators=(",", ":"))


@functools.lru_cache(maxsize=1)
def get_correction_tables() -> CorrectionTables:
    """Process-wide tables, loaded on first use and cached.

    Reads the JSON file named by HLL_CORRECTION_TABLES when set,
    otherwise builds the default tables for every precision.
    """
    path = os.environ.get(TABLES_ENV_VAR)
    if path:
        log.info("Loading correction tables from %s", path)
        return CorrectionTables.load(path)
    # Deferred import: tablegen depends on this module
    from hyperloglog_lite.estimation.tablegen import build_correction_tables

    log.info("Building default correction tables")
    return build_correction_tables()
