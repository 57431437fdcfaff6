"""Tests for precision profiles, SketchConfig and environment parsing."""
from __future__ import annotations

import pytest

from hyperloglog_lite.domain.config import (
    ALL_PRECISIONS,
    DEFAULT_CONFIG,
    HIGH_PRECISIONS,
    LOW_PRECISIONS,
    MEDIUM_PRECISIONS,
    PRECISION_PROFILES,
    Estimator,
    SketchConfig,
    get_alpha,
    get_profile,
    max_rank,
    min_register_width,
    parse_precisions,
)
from hyperloglog_lite.domain.errors import ConfigurationMismatch, NumericNonConvergence


class TestProfiles:
    def test_alpha_constants(self):
        assert get_alpha(16) == 0.673
        assert get_alpha(32) == 0.697
        assert get_alpha(64) == 0.709
        assert get_alpha(1024) == pytest.approx(0.7213 / (1 + 1.079 / 1024))

    def test_every_precision_has_a_profile(self):
        assert sorted(PRECISION_PROFILES) == list(range(4, 19))
        profile = get_profile(10)
        assert profile.number_of_registers == 1024
        assert profile.standard_error == pytest.approx(0.0325, abs=1e-4)

    def test_unknown_precision(self):
        with pytest.raises(ConfigurationMismatch):
            get_profile(3)
        with pytest.raises(ConfigurationMismatch):
            get_profile(19)

    def test_register_width_follows_hash_width(self):
        assert max_rank(10, 32) == 23
        assert min_register_width(10, 32) == 5
        assert min_register_width(10, 64) == 6
        assert get_profile(4).recommended_width(32) == 5
        assert get_profile(18).recommended_width(64) == 6

    def test_bundles_cover_range(self):
        assert LOW_PRECISIONS | MEDIUM_PRECISIONS | HIGH_PRECISIONS == ALL_PRECISIONS
        assert not LOW_PRECISIONS & MEDIUM_PRECISIONS


class TestSketchConfig:
    def test_defaults(self):
        assert DEFAULT_CONFIG.estimator is Estimator.METHOD_OF_MOMENTS
        assert DEFAULT_CONFIG.zero_count_correction is True
        assert DEFAULT_CONFIG.hash_bits == 32
        assert DEFAULT_CONFIG.enabled_precisions == ALL_PRECISIONS

    def test_estimator_given_as_string(self):
        assert SketchConfig(estimator="mle").estimator is Estimator.MLE

    def test_invalid_values(self):
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(estimator="median")
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(enabled_precisions=frozenset({20}))
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(enabled_precisions=frozenset())
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(hash_bits=16)
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(mle_tolerance=0.0)
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(mle_max_iterations=0)

    def test_validate_layout(self):
        DEFAULT_CONFIG.validate_layout(10, 5)
        with pytest.raises(ConfigurationMismatch):
            DEFAULT_CONFIG.validate_layout(10, 4)
        with pytest.raises(ConfigurationMismatch):
            DEFAULT_CONFIG.validate_layout(10, 9)
        with pytest.raises(ConfigurationMismatch):
            SketchConfig(hash_bits=64).validate_layout(10, 5)

    def test_disabled_precision_rejected(self):
        config = SketchConfig(enabled_precisions=frozenset({12}))
        config.validate_layout(12, 5)
        with pytest.raises(ConfigurationMismatch):
            config.validate_layout(10, 5)


class TestFromEnv:
    def test_empty_environment_gives_defaults(self):
        assert SketchConfig.from_env({}) == DEFAULT_CONFIG

    def test_all_variables(self):
        config = SketchConfig.from_env({
            "HLL_ESTIMATOR": "Beta",
            "HLL_ZERO_COUNT_CORRECTION": "off",
            "HLL_PRECISIONS": "low,12",
            "HLL_HASH_BITS": "64",
            "HLL_MLE_TOLERANCE": "1e-9",
            "HLL_MLE_MAX_ITERATIONS": "50",
        })
        assert config.estimator is Estimator.BETA
        assert config.zero_count_correction is False
        assert config.enabled_precisions == LOW_PRECISIONS | {12}
        assert config.hash_bits == 64
        assert config.mle_tolerance == 1e-9
        assert config.mle_max_iterations == 50

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("HLL_ESTIMATOR", "mle")
        assert SketchConfig.from_env().estimator is Estimator.MLE

    def test_bad_values(self):
        with pytest.raises(ConfigurationMismatch):
            SketchConfig.from_env({"HLL_ZERO_COUNT_CORRECTION": "maybe"})
        with pytest.raises(ConfigurationMismatch):
            SketchConfig.from_env({"HLL_HASH_BITS": "wide"})
        with pytest.raises(ConfigurationMismatch):
            SketchConfig.from_env({"HLL_PRECISIONS": "tiny"})

    def test_parse_precisions(self):
        assert parse_precisions("precision_13, high") == frozenset({13, 17, 18})
        assert parse_precisions("all") == ALL_PRECISIONS


class TestErrors:
    def test_configuration_mismatch_is_value_error(self):
        assert issubclass(ConfigurationMismatch, ValueError)

    def test_non_convergence_carries_iterations(self):
        exc = NumericNonConvergence("stuck", iterations=12)
        assert exc.iterations == 12
        assert isinstance(exc, ArithmeticError)
