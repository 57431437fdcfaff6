"""Binary interchange format for sketches.

Layout (little-endian):

    offset  size  field
    0       1     precision p
    1       1     register width b
    2       8     hash seed (uint64)
    10      n     packed registers, n = ceil(2^p * b / 8)

Register i occupies bits [i*b, (i+1)*b) of the payload read as one
LSB-first bit stream, so register 0 sits in the lowest bits of byte 0.
Padding bits after the last register are zero.

The estimator and hash width are not stored: they come from the config
passed to deserialize(), and must match the writer's for estimates to
agree.
"""
from __future__ import annotations

import struct

from hyperloglog_lite.domain.config import SketchConfig
from hyperloglog_lite.registers.packed import PackedRegisterArray, bytes_needed
from hyperloglog_lite.sketch.sketch import Sketch

HEADER = struct.Struct("<BBQ")
HEADER_SIZE = HEADER.size  # 10


def serialize(sketch: Sketch) -> bytes:
    header = HEADER.pack(sketch.precision, sketch.register_width, sketch.hash_seed)
    return header + sketch._registers.to_bytes()


def deserialize(data: bytes, config: SketchConfig | None = None) -> Sketch:
    """Rebuild a sketch from serialize() output.

    Raises ValueError for truncated or oversized input, non-zero padding,
    or register values the hash could never produce; ConfigurationMismatch
    when the header names a precision/width the config rejects.
    """
    data = bytes(data)
    if len(data) < HEADER_SIZE:
        raise ValueError(f"Sketch data too short for header: {len(data)} bytes")
    precision, width, seed = HEADER.unpack_from(data)
    sketch = Sketch(precision, width, seed, config)
    payload = data[HEADER_SIZE:]
    expected = bytes_needed(sketch.len_registers(), width)
    if len(payload) != expected:
        raise ValueError(
            f"Expected {expected} register bytes for p={precision}, b={width}, "
            f"got {len(payload)}"
        )
    registers = PackedRegisterArray.from_bytes(payload, sketch.len_registers(), width)
    top = sketch.max_register_value
    zeros = 0
    for i, value in enumerate(registers):
        if value > top:
            raise ValueError(f"Register {i} value {value} exceeds maximum rank {top}")
        if value == 0:
            zeros += 1
    sketch._registers = registers
    sketch._zeros = zeros
    return sketch
