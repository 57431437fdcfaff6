"""Sketch configuration: precision profiles, estimator choice, env loading.

Every supported precision p in [4, 18] has a profile with the register
count m = 2^p, the alpha constant that corrects the harmonic mean for
finite m, and the theoretical relative standard error 1.04 / sqrt(m).
The profiles are built once by a loop over the precision range rather
than spelled out per precision.

A SketchConfig captures the choices that must be identical across every
sketch taking part in a comparison: which estimator runs, whether the
small-range linear-counting branch is enabled, which precisions may be
constructed, and how wide the hash code is. It is fixed when a sketch is
built and travels with it as metadata.

Environment variables (all optional) for SketchConfig.from_env():
    HLL_ESTIMATOR              method_of_moments | beta | mle
    HLL_ZERO_COUNT_CORRECTION  1/0, true/false, yes/no, on/off
    HLL_PRECISIONS             e.g. "low,12,high" or "all"
    HLL_HASH_BITS              32 or 64
    HLL_MLE_TOLERANCE          float > 0
    HLL_MLE_MAX_ITERATIONS     int >= 1
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from hyperloglog_lite.domain.errors import ConfigurationMismatch

MIN_PRECISION = 4
MAX_PRECISION = 18
MIN_REGISTER_WIDTH = 1
MAX_REGISTER_WIDTH = 8
SUPPORTED_HASH_BITS = (32, 64)

LOW_PRECISIONS = frozenset(range(4, 11))
MEDIUM_PRECISIONS = frozenset(range(11, 17))
HIGH_PRECISIONS = frozenset(range(17, 19))
ALL_PRECISIONS = LOW_PRECISIONS | MEDIUM_PRECISIONS | HIGH_PRECISIONS

PRECISION_BUNDLES: Mapping[str, frozenset[int]] = MappingProxyType({
    "low": LOW_PRECISIONS,
    "medium": MEDIUM_PRECISIONS,
    "high": HIGH_PRECISIONS,
    "all": ALL_PRECISIONS,
})


class Estimator(Enum):
    METHOD_OF_MOMENTS = "method_of_moments"
    BETA = "beta"
    MLE = "mle"


def get_alpha(number_of_registers: int) -> float:
    """Normalizing constant for the harmonic-mean estimate."""
    if number_of_registers == 16:
        return 0.673
    if number_of_registers == 32:
        return 0.697
    if number_of_registers == 64:
        return 0.709
    return 0.7213 / (1.0 + 1.079 / number_of_registers)


def max_rank(precision: int, hash_bits: int) -> int:
    """Largest rank a hash of `hash_bits` bits can produce at this precision.

    The remainder has hash_bits - p bits; an all-zero remainder yields
    hash_bits - p leading zeros, so rank = hash_bits - p + 1.
    """
    return hash_bits - precision + 1


def min_register_width(precision: int, hash_bits: int) -> int:
    """Smallest b such that 2^b - 1 can hold max_rank(p, hash_bits)."""
    return max_rank(precision, hash_bits).bit_length()


@dataclass(frozen=True, slots=True)
class PrecisionProfile:
    precision: int
    number_of_registers: int
    alpha: float
    standard_error: float

    def recommended_width(self, hash_bits: int = 32) -> int:
        return min_register_width(self.precision, hash_bits)


def _build_profiles() -> Mapping[int, PrecisionProfile]:
    profiles = {}
    for p in range(MIN_PRECISION, MAX_PRECISION + 1):
        m = 1 << p
        profiles[p] = PrecisionProfile(
            precision=p,
            number_of_registers=m,
            alpha=get_alpha(m),
            standard_error=1.04 / math.sqrt(m),
        )
    return MappingProxyType(profiles)


PRECISION_PROFILES: Mapping[int, PrecisionProfile] = _build_profiles()


def get_profile(precision: int) -> PrecisionProfile:
    try:
        return PRECISION_PROFILES[precision]
    except KeyError:
        raise ConfigurationMismatch(
            f"Precision must be in [{MIN_PRECISION}, {MAX_PRECISION}], got {precision}"
        ) from None


@dataclass(frozen=True, slots=True)
class SketchConfig:
    """Estimator and layout options shared by every sketch in a comparison.

    Parameters:
        estimator: Which EstimationStrategy turns registers into a number.
        zero_count_correction: Enables the linear-counting branch of the
            method-of-moments estimator for low cardinalities.
        enabled_precisions: Precisions this process accepts at construction.
        hash_bits: Width of the hash code, 32 or 64.
        mle_tolerance: Convergence threshold on the Newton step (in log space).
        mle_max_iterations: Iteration cap before the MLE falls back to beta.
    """
    estimator: Estimator = Estimator.METHOD_OF_MOMENTS
    zero_count_correction: bool = True
    enabled_precisions: frozenset[int] = field(default=ALL_PRECISIONS)
    hash_bits: int = 32
    mle_tolerance: float = 1e-7
    mle_max_iterations: int = 32

    def __post_init__(self) -> None:
        if not isinstance(self.estimator, Estimator):
            object.__setattr__(self, "estimator", parse_estimator(self.estimator))
        precisions = frozenset(self.enabled_precisions)
        if not precisions:
            raise ConfigurationMismatch("enabled_precisions must not be empty")
        unsupported = sorted(precisions - ALL_PRECISIONS)
        if unsupported:
            raise ConfigurationMismatch(
                f"Unsupported precisions {unsupported}; "
                f"must be within [{MIN_PRECISION}, {MAX_PRECISION}]"
            )
        object.__setattr__(self, "enabled_precisions", precisions)
        if self.hash_bits not in SUPPORTED_HASH_BITS:
            raise ConfigurationMismatch(
                f"hash_bits must be one of {SUPPORTED_HASH_BITS}, got {self.hash_bits}"
            )
        if not self.mle_tolerance > 0.0:
            raise ConfigurationMismatch(
                f"mle_tolerance must be positive, got {self.mle_tolerance}"
            )
        if self.mle_max_iterations < 1:
            raise ConfigurationMismatch(
                f"mle_max_iterations must be >= 1, got {self.mle_max_iterations}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SketchConfig:
        """Build a config from HLL_* environment variables.

        Unset variables keep the dataclass defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if "HLL_ESTIMATOR" in env:
            kwargs["estimator"] = parse_estimator(env["HLL_ESTIMATOR"])
        if "HLL_ZERO_COUNT_CORRECTION" in env:
            kwargs["zero_count_correction"] = _parse_bool(
                "HLL_ZERO_COUNT_CORRECTION", env["HLL_ZERO_COUNT_CORRECTION"]
            )
        if "HLL_PRECISIONS" in env:
            kwargs["enabled_precisions"] = parse_precisions(env["HLL_PRECISIONS"])
        if "HLL_HASH_BITS" in env:
            kwargs["hash_bits"] = _parse_number("HLL_HASH_BITS", env["HLL_HASH_BITS"], int)
        if "HLL_MLE_TOLERANCE" in env:
            kwargs["mle_tolerance"] = _parse_number(
                "HLL_MLE_TOLERANCE", env["HLL_MLE_TOLERANCE"], float
            )
        if "HLL_MLE_MAX_ITERATIONS" in env:
            kwargs["mle_max_iterations"] = _parse_number(
                "HLL_MLE_MAX_ITERATIONS", env["HLL_MLE_MAX_ITERATIONS"], int
            )
        return cls(**kwargs)

    def validate_layout(self, precision: int, register_width: int) -> None:
        """Reject a (p, b) pair this configuration cannot support.

        Raises ConfigurationMismatch if p is outside [4, 18] or not
        enabled, if b is outside [1, 8], or if 2^b - 1 is smaller than
        the largest rank the configured hash width can produce.
        """
        get_profile(precision)
        if precision not in self.enabled_precisions:
            raise ConfigurationMismatch(
                f"Precision {precision} is not enabled "
                f"(enabled: {sorted(self.enabled_precisions)})"
            )
        if not (MIN_REGISTER_WIDTH <= register_width <= MAX_REGISTER_WIDTH):
            raise ConfigurationMismatch(
                f"Register width must be in [{MIN_REGISTER_WIDTH}, "
                f"{MAX_REGISTER_WIDTH}], got {register_width}"
            )
        needed = min_register_width(precision, self.hash_bits)
        if register_width < needed:
            raise ConfigurationMismatch(
                f"Register width {register_width} cannot hold rank "
                f"{max_rank(precision, self.hash_bits)} "
                f"(p={precision}, {self.hash_bits}-bit hash needs b >= {needed})"
            )


DEFAULT_CONFIG = SketchConfig()


def parse_estimator(value: str | Estimator) -> Estimator:
    if isinstance(value, Estimator):
        return value
    try:
        return Estimator(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(e.value for e in Estimator)
        raise ConfigurationMismatch(
            f"Unknown estimator {value!r}; expected one of: {choices}"
        ) from None


def parse_precisions(value: str) -> frozenset[int]:
    """Parse "low,12,high" style lists into a set of precisions."""
    result: set[int] = set()
    for token in value.split(","):
        token = token.strip().lower()
        if not token:
            continue
        if token in PRECISION_BUNDLES:
            result |= PRECISION_BUNDLES[token]
            continue
        if token.startswith("precision_"):
            token = token[len("precision_"):]
        try:
            result.add(int(token))
        except ValueError:
            raise ConfigurationMismatch(f"Invalid precision entry {token!r}") from None
    return frozenset(result)


_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationMismatch(f"{name} must be a boolean, got {value!r}")


def _parse_number(name: str, value: str, kind: type) -> int | float:
    try:
        return kind(value.strip())
    except ValueError:
        raise ConfigurationMismatch(
            f"{name} must be {kind.__name__}, got {value!r}"
        ) from None
