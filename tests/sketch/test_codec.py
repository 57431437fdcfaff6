"""Tests for the binary sketch format."""
from __future__ import annotations

import struct

import pytest

from hyperloglog_lite.domain.config import Estimator, SketchConfig
from hyperloglog_lite.domain.errors import ConfigurationMismatch
from hyperloglog_lite.registers.packed import PackedRegisterArray
from hyperloglog_lite.sketch.codec import HEADER_SIZE, deserialize, serialize
from hyperloglog_lite.sketch.sketch import Sketch


class TestLayout:
    def test_header_fields(self, sketch_factory):
        sketch = sketch_factory(range(100), hash_seed=7)
        data = serialize(sketch)
        assert HEADER_SIZE == 10
        assert data[0] == 10
        assert data[1] == 5
        assert data[2:10] == (7).to_bytes(8, "little")

    def test_payload_size(self):
        assert len(Sketch(10).to_bytes()) == 10 + 640
        assert len(Sketch(4).to_bytes()) == 10 + 10
        assert len(Sketch(12, config=SketchConfig(hash_bits=64)).to_bytes()) == 10 + 3072

    def test_empty_sketch_payload_is_zero(self):
        assert Sketch(10).to_bytes()[HEADER_SIZE:] == bytes(640)

    def test_register_zero_in_lowest_bits(self):
        values = [3, 1] + [0] * 1022
        data = Sketch.from_registers(values).to_bytes()
        assert data[HEADER_SIZE] == 0x23


class TestRoundTrip:
    def test_registers_restored(self, sketch_factory):
        sketch = sketch_factory(range(5000), hash_seed=99)
        restored = Sketch.from_bytes(sketch.to_bytes())
        assert restored == sketch
        assert restored.registers() == sketch.registers()
        assert restored.hash_seed == 99
        assert restored.number_of_zero_registers == sketch.number_of_zero_registers
        assert restored.to_bytes() == sketch.to_bytes()
        assert restored.estimate() == sketch.estimate()

    def test_restored_sketch_keeps_working(self, sketch_factory):
        sketch = sketch_factory(range(500))
        restored = deserialize(serialize(sketch))
        restored.insert_many(range(500, 1000))
        sketch.insert_many(range(500, 1000))
        assert restored == sketch

    def test_config_supplies_estimator(self, sketch_factory):
        config = SketchConfig(estimator=Estimator.BETA)
        sketch = sketch_factory(range(300), config=config)
        restored = deserialize(sketch.to_bytes(), config)
        assert restored.estimator is Estimator.BETA
        assert restored.estimate() == sketch.estimate()

    def test_wide_hash(self, sketch_factory):
        config = SketchConfig(hash_bits=64)
        sketch = sketch_factory(range(2000), precision=12, config=config)
        restored = Sketch.from_bytes(sketch.to_bytes(), config)
        assert restored.registers() == sketch.registers()


class TestMalformed:
    def test_short_header(self):
        with pytest.raises(ValueError):
            deserialize(b"\x0a\x05")

    def test_truncated_payload(self):
        data = Sketch(10).to_bytes()
        with pytest.raises(ValueError):
            deserialize(data[:-1])
        with pytest.raises(ValueError):
            deserialize(data + b"\x00")

    def test_unsupported_precision(self):
        data = struct.pack("<BBQ", 3, 5, 0) + bytes(5)
        with pytest.raises(ConfigurationMismatch):
            deserialize(data)

    def test_undersized_width(self):
        data = struct.pack("<BBQ", 10, 4, 0) + bytes(512)
        with pytest.raises(ConfigurationMismatch):
            deserialize(data)

    def test_register_above_max_rank(self):
        payload = PackedRegisterArray.from_values([24] + [0] * 1023, 5).to_bytes()
        data = struct.pack("<BBQ", 10, 5, 0) + payload
        with pytest.raises(ValueError):
            deserialize(data)
