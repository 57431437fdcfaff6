"""Cardinality estimation over register histograms.

Public API:
    RegisterHistogram: value -> register count view of a sketch
    CorrectionTables / PrecisionTable: read-only bias and beta data
    get_correction_tables: process-wide tables, loaded once
    EstimationStrategy: MethodOfMoments, BetaCorrected, MaximumLikelihood
    make_strategy: pick the strategy named by a SketchConfig
"""

from hyperloglog_lite.estimation.engine import (
    BetaCorrected,
    EstimationStrategy,
    MaximumLikelihood,
    MethodOfMoments,
    beta_estimate,
    large_range_correction,
    linear_counting,
    make_strategy,
    method_of_moments_estimate,
    mle_estimate,
    raw_estimate,
)
from hyperloglog_lite.estimation.histogram import RegisterHistogram
from hyperloglog_lite.estimation.tables import (
    CorrectionTables,
    PrecisionTable,
    get_correction_tables,
)

__all__ = [
    "BetaCorrected",
    "CorrectionTables",
    "EstimationStrategy",
    "MaximumLikelihood",
    "MethodOfMoments",
    "PrecisionTable",
    "RegisterHistogram",
    "beta_estimate",
    "get_correction_tables",
    "large_range_correction",
    "linear_counting",
    "make_strategy",
    "method_of_moments_estimate",
    "mle_estimate",
    "raw_estimate",
]
