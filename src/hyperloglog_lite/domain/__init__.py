"""Shared configuration, errors and type aliases.

Re-exports the public names for convenient access:
    from hyperloglog_lite.domain import SketchConfig, Estimator, ConfigurationMismatch
"""
from hyperloglog_lite.domain.config import (
    ALL_PRECISIONS,
    DEFAULT_CONFIG,
    HIGH_PRECISIONS,
    LOW_PRECISIONS,
    MAX_PRECISION,
    MEDIUM_PRECISIONS,
    MIN_PRECISION,
    PRECISION_PROFILES,
    Estimator,
    PrecisionProfile,
    SketchConfig,
    get_alpha,
    get_profile,
)
from hyperloglog_lite.domain.errors import ConfigurationMismatch, NumericNonConvergence
from hyperloglog_lite.domain.types import Element, HashCode, Precision, RegisterValue

__all__ = [
    "ALL_PRECISIONS",
    "DEFAULT_CONFIG",
    "HIGH_PRECISIONS",
    "LOW_PRECISIONS",
    "MAX_PRECISION",
    "MEDIUM_PRECISIONS",
    "MIN_PRECISION",
    "PRECISION_PROFILES",
    "ConfigurationMismatch",
    "Element",
    "Estimator",
    "HashCode",
    "NumericNonConvergence",
    "Precision",
    "PrecisionProfile",
    "RegisterValue",
    "SketchConfig",
    "get_alpha",
    "get_profile",
]
