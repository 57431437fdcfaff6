"""Estimation engine: register histogram -> cardinality.

Three strategies share a small set of pure functions:

    MethodOfMoments    raw harmonic-mean estimate, linear counting for the
                       small range, table-driven bias correction in the
                       middle, large-range correction for 32-bit hashes
    BetaCorrected      LogLog-Beta: a single closed-form expression whose
                       polynomial in ln(zeros + 1) absorbs the small-range
                       bias, no table lookup at estimate time
    MaximumLikelihood  Newton iteration on the Poissonized log-likelihood
                       of the histogram; falls back to BetaCorrected when
                       the solver does not converge

The strategy is picked once from SketchConfig.estimator and carried by
the sketch; estimate() never branches on configuration.

References:
    Flajolet et al., "HyperLogLog: the analysis of a near-optimal
    cardinality estimation algorithm", 2007.
    Heule, Nunkesser, Hall, "HyperLogLog in Practice", 2013.
    Qin et al., "LogLog-Beta and More", 2016.
    Ertl, "New cardinality estimation algorithms for HyperLogLog
    sketches", 2017.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod

from hyperloglog_lite.domain.config import (
    Estimator,
    SketchConfig,
    get_alpha,
)
from hyperloglog_lite.domain.errors import NumericNonConvergence
from hyperloglog_lite.estimation.histogram import RegisterHistogram
from hyperloglog_lite.estimation.tables import (
    CorrectionTables,
    PrecisionTable,
    get_correction_tables,
)

log = logging.getLogger(__name__)

TWO_POW_32 = float(1 << 32)
# Above this raw estimate the bias table no longer applies
BIAS_CORRECTION_LIMIT = 5.0
# exp(x) overflows a double a little above 709
_EXP_LIMIT = 700.0
_MAX_LOG_STEP = 2.0


def raw_estimate(histogram: RegisterHistogram) -> float:
    """alpha * m^2 / sum(2^-register)."""
    m = histogram.number_of_registers
    return get_alpha(m) * m * m / histogram.harmonic_sum()


def linear_counting(number_of_registers: int, zeros: int) -> float:
    """m * ln(m / zeros); requires zeros > 0."""
    return number_of_registers * math.log(number_of_registers / zeros)


def large_range_correction(estimate: float, hash_bits: int) -> float:
    """Account for hash collisions near 2^32 when codes are 32 bits wide.

    Estimates at or beyond 2^32 are returned unchanged: the correction is
    undefined there.
    """
    if hash_bits != 32 or estimate <= TWO_POW_32 / 30.0 or estimate >= TWO_POW_32:
        return estimate
    return -TWO_POW_32 * math.log1p(-estimate / TWO_POW_32)


def method_of_moments_estimate(
    histogram: RegisterHistogram,
    table: PrecisionTable,
    zero_count_correction: bool = True,
    hash_bits: int = 32,
) -> float:
    if histogram.is_empty:
        return 0.0
    m = histogram.number_of_registers
    zeros = histogram.zeros
    if zero_count_correction and zeros:
        small = linear_counting(m, zeros)
        if small <= table.linear_counting_threshold:
            return small
    raw = raw_estimate(histogram)
    if raw <= BIAS_CORRECTION_LIMIT * m:
        raw -= table.bias(raw)
    return large_range_correction(raw, hash_bits)


def beta_estimate(
    histogram: RegisterHistogram,
    table: PrecisionTable,
    hash_bits: int = 32,
) -> float:
    """alpha * m * (m - z) / (beta(z) + sum 2^-register)."""
    if histogram.is_empty:
        return 0.0
    m = histogram.number_of_registers
    zeros = histogram.zeros
    denominator = table.beta_polynomial(zeros) + histogram.harmonic_sum()
    if denominator <= 0.0:
        log.debug(
            "Beta denominator %.6g not positive at p=%d, zeros=%d; using linear counting",
            denominator, histogram.precision, zeros,
        )
        return linear_counting(m, zeros)
    estimate = get_alpha(m) * m * (m - zeros) / denominator
    return large_range_correction(estimate, hash_bits)


def _likelihood_derivatives(
    histogram: RegisterHistogram, lam: float
) -> tuple[float, float]:
    """First and second derivative of the log-likelihood in lambda.

    Each register is modelled as the maximum of Poisson(lambda) geometric
    draws, P(R <= k) = exp(-lambda * 2^-k). Values below the top are exact
    observations; the top value K is the tail event R >= K, whose
    likelihood 1 - exp(-lambda * 2^-(K-1)) has the same form as the
    "non-zero" factor of the other values.
    """
    counts = histogram.counts
    top = histogram.top_value
    first = -float(counts[0])
    second = 0.0
    for k in range(1, top + 1):
        count = counts[k]
        if not count:
            continue
        if k < top:
            t = math.ldexp(1.0, -k)
            first -= count * t
        else:
            t = math.ldexp(1.0, -(k - 1))
        x = lam * t
        if x > _EXP_LIMIT:
            continue
        em1 = math.expm1(x)
        first += count * t / em1
        second -= count * t * t / (em1 * -math.expm1(-x))
    return first, second


def mle_estimate(
    histogram: RegisterHistogram,
    tolerance: float = 1e-7,
    max_iterations: int = 32,
) -> float:
    """Maximum-likelihood cardinality via Newton's method on u = ln(lambda).

    Raises NumericNonConvergence when the histogram has no finite maximum
    (every register at the top value), when an iterate is not finite, or
    when max_iterations steps do not bring |du| under tolerance.
    """
    if histogram.is_empty:
        return 0.0
    if histogram.is_saturated:
        raise NumericNonConvergence("Every register is saturated; likelihood has no maximum")
    m = histogram.number_of_registers
    zeros = histogram.zeros
    if zeros:
        lam = math.log(m / zeros)
    else:
        lam = raw_estimate(histogram) / m
    u = math.log(lam)
    for iteration in range(1, max_iterations + 1):
        first, second = _likelihood_derivatives(histogram, lam)
        if second >= 0.0 or not math.isfinite(first) or not math.isfinite(second):
            raise NumericNonConvergence(
                f"Degenerate curvature at lambda={lam!r}", iterations=iteration
            )
        step = -first / (lam * second)
        if not math.isfinite(step):
            raise NumericNonConvergence(f"Non-finite Newton step at lambda={lam!r}", iterations=iteration)
        step = max(-_MAX_LOG_STEP, min(_MAX_LOG_STEP, step))
        u += step
        lam = math.exp(u)
        if abs(step) < tolerance:
            return m * lam
    raise NumericNonConvergence(
        f"No convergence within {max_iterations} iterations (last lambda={lam!r})",
        iterations=max_iterations,
    )


class EstimationStrategy(ABC):
    """Turns a register histogram into a cardinality estimate.

    One instance is built per sketch configuration and shared by every
    estimate() call of that sketch.
    """

    estimator: Estimator

    def __init__(self, config: SketchConfig, table: PrecisionTable) -> None:
        self._config = config
        self._table = table

    @property
    def table(self) -> PrecisionTable:
        return self._table

    @abstractmethod
    def estimate(self, histogram: RegisterHistogram) -> float:
        """Cardinality estimate; exactly 0.0 for an empty histogram."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(p={self._table.precision})"


class MethodOfMoments(EstimationStrategy):
    estimator = Estimator.METHOD_OF_MOMENTS

    def estimate(self, histogram: RegisterHistogram) -> float:
        return method_of_moments_estimate(
            histogram,
            self._table,
            zero_count_correction=self._config.zero_count_correction,
            hash_bits=self._config.hash_bits,
        )


class BetaCorrected(EstimationStrategy):
    estimator = Estimator.BETA

    def estimate(self, histogram: RegisterHistogram) -> float:
        return beta_estimate(histogram, self._table, hash_bits=self._config.hash_bits)


class MaximumLikelihood(EstimationStrategy):
    estimator = Estimator.MLE

    def estimate(self, histogram: RegisterHistogram) -> float:
        try:
            return mle_estimate(
                histogram,
                tolerance=self._config.mle_tolerance,
                max_iterations=self._config.mle_max_iterations,
            )
        except NumericNonConvergence as exc:
            log.debug("MLE fell back to beta after %d iterations: %s", exc.iterations, exc)
            return beta_estimate(histogram, self._table, hash_bits=self._config.hash_bits)


_STRATEGIES: dict[Estimator, type[EstimationStrategy]] = {
    Estimator.METHOD_OF_MOMENTS: MethodOfMoments,
    Estimator.BETA: BetaCorrected,
    Estimator.MLE: MaximumLikelihood,
}


def make_strategy(
    config: SketchConfig,
    precision: int,
    tables: CorrectionTables | None = None,
) -> EstimationStrategy:
    """Build the strategy named by config.estimator for one precision.

    Uses the process-wide correction tables unless `tables` is given.
    """
    if tables is None:
        tables = get_correction_tables()
    return _STRATEGIES[config.estimator](config, tables[precision])
