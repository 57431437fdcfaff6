"""Tests for correction tables: interpolation, beta polynomial, loading."""
from __future__ import annotations

import math

import pytest

from hyperloglog_lite.domain.config import get_alpha
from hyperloglog_lite.domain.errors import ConfigurationMismatch
from hyperloglog_lite.estimation.tablegen import (
    LINEAR_COUNTING_THRESHOLDS,
    build_correction_tables,
    expected_raw_estimate,
)
from hyperloglog_lite.estimation.tables import (
    CorrectionTables,
    PrecisionTable,
    get_correction_tables,
)


def _table(**overrides) -> PrecisionTable:
    fields = dict(
        precision=10,
        raw_estimates=(10.0, 20.0, 40.0),
        biases=(2.0, 4.0, 0.0),
        beta=(1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
        linear_counting_threshold=900.0,
    )
    fields.update(overrides)
    return PrecisionTable(**fields)


class TestPrecisionTable:
    def test_linear_interpolation(self):
        table = _table()
        assert table.bias(15.0) == pytest.approx(3.0)
        assert table.bias(30.0) == pytest.approx(2.0)
        assert table.bias(20.0) == pytest.approx(4.0)

    def test_clamped_outside_range(self):
        table = _table()
        assert table.bias(0.0) == pytest.approx(2.0)
        assert table.bias(1e9) == pytest.approx(0.0)

    def test_beta_polynomial(self):
        assert _table().beta_polynomial(5) == pytest.approx(5.0)
        linear_in_log = _table(beta=(0.0, 1.0, 0, 0, 0, 0, 0, 0))
        assert linear_in_log.beta_polynomial(5) == pytest.approx(math.log(6))
        cubic = _table(beta=(0.0, 0, 0, 2.0, 0, 0, 0, 0))
        assert cubic.beta_polynomial(9) == pytest.approx(2.0 * math.log(10) ** 3)

    def test_validation(self):
        with pytest.raises(ValueError):
            _table(biases=(1.0, 2.0))
        with pytest.raises(ValueError):
            _table(raw_estimates=(10.0, 10.0, 40.0))
        with pytest.raises(ValueError):
            _table(beta=(1.0, 2.0))


class TestCorrectionTables:
    def test_missing_precision(self):
        tables = CorrectionTables({10: _table()})
        assert 10 in tables
        assert tables.precisions == (10,)
        with pytest.raises(ConfigurationMismatch):
            tables[12]

    def test_precision_key_must_match(self):
        with pytest.raises(ValueError):
            CorrectionTables({11: _table()})

    def test_json_file_round_trip(self, tmp_path):
        tables = CorrectionTables({10: _table()})
        path = tmp_path / "tables.json"
        tables.dump(path)
        loaded = CorrectionTables.load(path)
        assert loaded.to_dict() == tables.to_dict()
        assert loaded[10] == tables[10]

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            CorrectionTables.from_dict({"format": 99, "precisions": {}})

    def test_environment_override(self, tmp_path, monkeypatch):
        path = tmp_path / "tables.json"
        CorrectionTables({10: _table()}).dump(path)
        monkeypatch.setenv("HLL_CORRECTION_TABLES", str(path))
        get_correction_tables.cache_clear()
        try:
            loaded = get_correction_tables()
            assert loaded.precisions == (10,)
            assert loaded[10].biases == (2.0, 4.0, 0.0)
        finally:
            monkeypatch.delenv("HLL_CORRECTION_TABLES")
            get_correction_tables.cache_clear()

    def test_loaded_once(self):
        assert get_correction_tables() is get_correction_tables()


class TestGeneratedTables:
    def test_covers_every_precision(self):
        tables = get_correction_tables()
        assert tables.precisions == tuple(range(4, 19))
        for p in tables:
            assert tables[p].linear_counting_threshold == LINEAR_COUNTING_THRESHOLDS[p]

    def test_bias_at_zero_cardinality_is_raw_estimate(self, table10):
        # The first grid point is n = 0, where the whole raw estimate is bias
        assert table10.biases[0] == pytest.approx(table10.raw_estimates[0])
        assert table10.raw_estimates[0] == pytest.approx(get_alpha(1024) * 1024)

    def test_bias_shrinks_with_cardinality(self, table10):
        assert abs(table10.biases[-1]) < 0.05 * table10.raw_estimates[-1]
        assert table10.biases[-1] < table10.biases[0]

    def test_expected_raw_estimate_is_increasing(self):
        raw = expected_raw_estimate([0.0, 100.0, 1000.0, 5000.0], 10)
        assert list(raw) == sorted(raw)

    def test_beta_starts_near_alpha_minus_one(self, table10):
        # With almost every register empty the denominator must be ~alpha*m
        m = 1024
        assert table10.beta_polynomial(m - 1) / m == pytest.approx(get_alpha(m) - 1.0, abs=0.02)

    def test_builder_subset(self):
        tables = build_correction_tables([8, 9])
        assert tables.precisions == (8, 9)
