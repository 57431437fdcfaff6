"""Generator for the default correction tables.

Both the bias curves and the beta coefficients come from the Poisson
model of a sketch: after n distinct inserts each register independently
sees a Poisson(lambda = n/m) number of hashes, so

    P(R <= k) = exp(-lambda * 2^-k)

From that distribution we get the first two moments of 2^-R and with
them the expected raw harmonic-mean estimate, to second order:

    E[raw] ~= alpha*m / mu1 * (1 + (mu2 - mu1^2) / (m * mu1^2))
    mu1 = E[2^-R],  mu2 = E[4^-R]

Bias curve: evaluate E[raw] on a grid of n in [0, 6m] and store the
pairs (E[raw], E[raw] - n).

Beta: choose beta(z) so that alpha*m*(m - z) / (beta(z) + sum 2^-R)
is unbiased at the expected zero count z = m*exp(-lambda). The target
value of beta at each grid point is solved in closed form and the
8 coefficients are fitted by weighted least squares with weights that
make the residual a relative error in the estimate.

Linear-counting thresholds are the empirical switch-over points
published with HyperLogLog++.
"""
from __future__ import annotations

import logging
from typing import Iterable

import numpy as np

from hyperloglog_lite.domain.config import ALL_PRECISIONS, get_alpha
from hyperloglog_lite.estimation.tables import (
    BETA_TERMS,
    CorrectionTables,
    PrecisionTable,
)

log = logging.getLogger(__name__)

LINEAR_COUNTING_THRESHOLDS: dict[int, float] = {
    4: 10, 5: 20, 6: 40, 7: 80, 8: 220, 9: 400, 10: 900, 11: 1800,
    12: 3100, 13: 6500, 14: 11500, 15: 20000, 16: 50000, 17: 120000,
    18: 350000,
}

# Registers above this value carry negligible probability mass for n <= 6m
_MODEL_MAX_VALUE = 64
BIAS_POINTS = 200
BETA_POINTS = 400


def register_moments(lam: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """E[2^-R] and E[4^-R] for Poisson(lam) registers, vectorised over lam."""
    k = np.arange(_MODEL_MAX_VALUE + 1, dtype=np.float64)
    cdf = np.exp(-np.outer(lam, np.exp2(-k)))
    pmf = np.diff(cdf, axis=1, prepend=0.0)
    pmf[:, -1] += 1.0 - cdf[:, -1]
    mu1 = pmf @ np.exp2(-k)
    mu2 = pmf @ np.exp2(-2.0 * k)
    return mu1, mu2


def expected_raw_estimate(cardinalities: np.ndarray, precision: int) -> np.ndarray:
    m = 1 << precision
    alpha = get_alpha(m)
    mu1, mu2 = register_moments(np.asarray(cardinalities, dtype=np.float64) / m)
    return alpha * m / mu1 * (1.0 + (mu2 - mu1 * mu1) / (m * mu1 * mu1))


def build_bias_curve(
    precision: int, points: int = BIAS_POINTS
) -> tuple[tuple[float, ...], tuple[float, ...]]:
    """Ascending (raw estimates, biases) for n in [0, 6m]."""
    m = 1 << precision
    cardinalities = np.linspace(0.0, 6.0 * m, points)
    raw = expected_raw_estimate(cardinalities, precision)
    keep = [0]
    for i in range(1, len(raw)):
        if raw[i] > raw[keep[-1]]:
            keep.append(i)
    raw = raw[keep]
    biases = raw - cardinalities[keep]
    return tuple(float(v) for v in raw), tuple(float(v) for v in biases)


def _beta_design(zeros: np.ndarray) -> np.ndarray:
    zl = np.log1p(zeros)
    columns = [zeros] + [zl ** i for i in range(1, BETA_TERMS)]
    return np.column_stack(columns)


def fit_beta(precision: int, points: int = BETA_POINTS) -> tuple[float, ...]:
    """Least-squares LogLog-Beta coefficients for one precision."""
    m = 1 << precision
    alpha = get_alpha(m)
    lam = np.geomspace(0.5 / m, np.log(m) + 8.0, points)
    cardinalities = lam * m
    zeros = m * np.exp(-lam)
    mu1, mu2 = register_moments(lam)
    mean_sum = m * mu1
    var_sum = m * (mu2 - mu1 * mu1)
    # Denominator that makes alpha*m*(m - z)/denominator equal n, before
    # the Jensen correction for the spread of sum 2^-R
    plain = alpha * m * (m - zeros) / cardinalities
    target = plain + var_sum / plain - mean_sum

    design = _beta_design(zeros)
    weights = 1.0 / plain
    scale = np.abs(design).max(axis=0)
    scale[scale == 0.0] = 1.0
    solution, *_ = np.linalg.lstsq(
        design * weights[:, None] / scale, target * weights, rcond=None
    )
    return tuple(float(c) for c in solution / scale)


def build_precision_table(precision: int) -> PrecisionTable:
    raw_estimates, biases = build_bias_curve(precision)
    return PrecisionTable(
        precision=precision,
        raw_estimates=raw_estimates,
        biases=biases,
        beta=fit_beta(precision),
        linear_counting_threshold=float(LINEAR_COUNTING_THRESHOLDS[precision]),
    )


def build_correction_tables(
    precisions: Iterable[int] = ALL_PRECISIONS,
) -> CorrectionTables:
    tables = {p: build_precision_table(p) for p in sorted(precisions)}
    log.debug("Generated correction tables for precisions %s", sorted(tables))
    return CorrectionTables(tables)
