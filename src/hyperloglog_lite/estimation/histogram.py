"""Register-value histogram: the only input the estimators need.

Every estimator in this package is a function of how many registers
hold each value, not of which register holds it. Collapsing m
registers into at most 2^b counts makes each estimator O(2^b) after a
single O(m) scan.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from hyperloglog_lite.domain.config import max_rank
from hyperloglog_lite.registers.packed import PackedRegisterArray


@dataclass(frozen=True, slots=True)
class RegisterHistogram:
    """counts[k] = number of registers whose value is k.

    top_value is the largest value a register can reach for this layout:
    min(hash_bits - p + 1, 2^b - 1). A register at top_value records
    "at least top_value" and is treated as a tail event by the MLE.
    """
    counts: tuple[int, ...]
    precision: int
    top_value: int

    @classmethod
    def from_registers(
        cls,
        registers: PackedRegisterArray,
        precision: int,
        hash_bits: int,
    ) -> RegisterHistogram:
        return cls.from_counts(registers.histogram(), precision, registers.width, hash_bits)

    @classmethod
    def from_counts(
        cls,
        counts: list[int] | tuple[int, ...],
        precision: int,
        register_width: int,
        hash_bits: int,
    ) -> RegisterHistogram:
        top = min(max_rank(precision, hash_bits), (1 << register_width) - 1)
        if len(counts) <= top:
            counts = tuple(counts) + (0,) * (top + 1 - len(counts))
        if sum(counts) != 1 << precision:
            raise ValueError(
                f"Histogram covers {sum(counts)} registers, expected {1 << precision}"
            )
        return cls(counts=tuple(counts), precision=precision, top_value=top)

    @property
    def number_of_registers(self) -> int:
        return 1 << self.precision

    @property
    def zeros(self) -> int:
        return self.counts[0]

    @property
    def is_empty(self) -> bool:
        return self.counts[0] == self.number_of_registers

    @property
    def is_saturated(self) -> bool:
        """All registers sit at the largest representable value."""
        return self.counts[self.top_value] == self.number_of_registers

    def harmonic_sum(self) -> float:
        """sum over registers of 2^-value."""
        return math.fsum(
            math.ldexp(count, -value)
            for value, count in enumerate(self.counts)
            if count
        )
