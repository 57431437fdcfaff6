"""HyperLogLog sketch over a bit-packed register array.

Answers "how many distinct elements went in?" in ceil(m*b/64) words,
independent of how many elements were inserted. Each insert hashes the
element, picks a register with the top p bits of the code, and raises
that register to the rank of the remaining bits if the rank is larger.
Registers only ever grow.

Union is the element-wise max of two register arrays, so it is exactly
commutative, associative and idempotent at the register level: feeding
A and B into one sketch and unioning two sketches fed A and B give the
same registers. `a & b` takes the element-wise min instead, a rough
sketch of the intersection. Intersection and difference estimates are
derived by inclusion-exclusion from three estimates and carry the
compound error of all three; do not expect union-level accuracy from them.

Not thread-safe. Use one sketch per writer and fold with union, or
wrap a shared sketch in concurrency.LockedSketch.
"""
from __future__ import annotations

import logging
from typing import Iterable

from hyperloglog_lite.domain.config import (
    DEFAULT_CONFIG,
    Estimator,
    SketchConfig,
    get_profile,
    max_rank,
)
from hyperloglog_lite.domain.errors import ConfigurationMismatch
from hyperloglog_lite.domain.types import Element
from hyperloglog_lite.estimation.engine import EstimationStrategy, make_strategy
from hyperloglog_lite.estimation.histogram import RegisterHistogram
from hyperloglog_lite.hashing.strategy import HashStrategy
from hyperloglog_lite.registers.packed import PackedRegisterArray

log = logging.getLogger(__name__)


class Sketch:
    """Cardinality sketch with m = 2^precision registers.

    Parameters:
        precision: p in [4, 18]; must be enabled in `config`.
        register_width: Bits per register. Defaults to the smallest width
            that holds every rank of the configured hash width (5 for
            32-bit hashes below p=18, 6 for 64-bit hashes).
        hash_seed: Unsigned 64-bit seed. Sketches only combine when their
            seeds match.
        config: Estimator and hashing options; DEFAULT_CONFIG if omitted.

    Raises ConfigurationMismatch for an unsupported or disabled
    precision, an out-of-range width, or a width too narrow for the
    largest rank the hash can produce.

    Typical precision values (standard error 1.04 / sqrt(m)):
        p=10: 1024 registers, 640 bytes at b=5, ~3.25% error
        p=12: 4096 registers, 2560 bytes at b=5, ~1.63% error
        p=14: 16384 registers, 10 KB at b=5, ~0.81% error
    """

    __slots__ = (
        "_precision", "_config", "_hasher", "_registers", "_zeros", "_strategy",
    )

    def __init__(
        self,
        precision: int,
        register_width: int | None = None,
        hash_seed: int = 0,
        config: SketchConfig | None = None,
    ) -> None:
        config = DEFAULT_CONFIG if config is None else config
        if register_width is None:
            register_width = get_profile(precision).recommended_width(config.hash_bits)
        config.validate_layout(precision, register_width)
        self._precision = precision
        self._config = config
        self._hasher = HashStrategy(precision, register_width, hash_seed, config.hash_bits)
        self._registers = PackedRegisterArray(1 << precision, register_width)
        self._zeros = 1 << precision
        self._strategy: EstimationStrategy = make_strategy(config, precision)
        log.debug(
            "Created sketch p=%d b=%d seed=%d hash_bits=%d estimator=%s",
            precision, register_width, hash_seed, config.hash_bits,
            config.estimator.value,
        )

    # -- construction helpers -------------------------------------------

    @classmethod
    def from_registers(
        cls,
        values: Iterable[int],
        register_width: int | None = None,
        hash_seed: int = 0,
        config: SketchConfig | None = None,
    ) -> Sketch:
        """Build a sketch whose registers hold `values`.

        The precision is log2(len(values)). Raises ValueError when the
        length is not a power of two or a value exceeds the largest rank
        the configured hash can produce.
        """
        values = list(values)
        length = len(values)
        if length == 0 or length & (length - 1):
            raise ValueError(f"Register count must be a power of two, got {length}")
        sketch = cls(length.bit_length() - 1, register_width, hash_seed, config)
        top = min(sketch.max_register_value, sketch._registers.max_value)
        for i, value in enumerate(values):
            if not (0 <= value <= top):
                raise ValueError(f"Register {i} value {value} is outside [0, {top}]")
        sketch._registers = PackedRegisterArray.from_values(values, sketch.register_width)
        sketch._zeros = values.count(0)
        return sketch

    @classmethod
    def from_iterable(
        cls,
        elements: Iterable[Element],
        precision: int,
        register_width: int | None = None,
        hash_seed: int = 0,
        config: SketchConfig | None = None,
    ) -> Sketch:
        sketch = cls(precision, register_width, hash_seed, config)
        sketch.insert_many(elements)
        return sketch

    def _empty_like(self) -> Sketch:
        """Same parameters and strategy, all registers zero."""
        clone = Sketch.__new__(Sketch)
        clone._precision = self._precision
        clone._config = self._config
        clone._hasher = self._hasher
        clone._registers = PackedRegisterArray(self._registers.length, self._registers.width)
        clone._zeros = self._registers.length
        clone._strategy = self._strategy
        return clone

    # -- parameters ------------------------------------------------------

    @property
    def precision(self) -> int:
        return self._precision

    @property
    def register_width(self) -> int:
        return self._registers.width

    @property
    def hash_seed(self) -> int:
        return self._hasher.seed

    @property
    def hash_bits(self) -> int:
        return self._hasher.hash_bits

    @property
    def config(self) -> SketchConfig:
        return self._config

    @property
    def estimator(self) -> Estimator:
        return self._config.estimator

    @property
    def max_register_value(self) -> int:
        """Largest value a register can take: min(max rank, 2^b - 1)."""
        return min(max_rank(self._precision, self.hash_bits), self._registers.max_value)

    def len_registers(self) -> int:
        return self._registers.length

    # -- mutation ----------------------------------------------------------

    def insert(self, element: Element) -> bool:
        """Add an element. Returns True if a register changed."""
        index, rank = self._hasher.split(element)
        previous = self._registers.get(index)
        if not self._registers.set_if_greater(index, rank):
            return False
        if previous == 0:
            self._zeros -= 1
        return True

    def insert_many(self, elements: Iterable[Element]) -> int:
        """Add every element; returns how many inserts changed a register."""
        changed = 0
        for element in elements:
            if self.insert(element):
                changed += 1
        return changed

    def merge_in_place(self, other: Sketch) -> None:
        """Raise self's registers to the element-wise max with other's.

        Raises ConfigurationMismatch (leaving self untouched) if the
        sketches are not compatible. Merging a sketch into itself is a
        no-op.
        """
        self._check_compatible(other)
        if other is self:
            return
        self._registers.merge_max_in_place(other._registers)
        self._zeros = self._registers.count_zeros()

    def clear(self) -> None:
        """Reset every register to zero."""
        self._registers.clear()
        self._zeros = self._registers.length

    # -- queries ---------------------------------------------------------

    def estimate(self) -> float:
        """Estimated number of distinct elements inserted; 0.0 when empty."""
        if self._zeros == self._registers.length:
            return 0.0
        return self._strategy.estimate(self.register_histogram())

    def union(self, other: Sketch) -> Sketch:
        """New sketch holding the element-wise max of both register arrays.

        Raises ConfigurationMismatch if precision, register width, hash
        seed or hash width differ; neither input is modified.
        """
        self._check_compatible(other)
        result = self._empty_like()
        result._registers = self._registers.merge_max(other._registers)
        result._zeros = result._registers.count_zeros()
        return result

    def intersection(self, other: Sketch) -> Sketch:
        """New sketch holding the element-wise min of both register arrays.

        Approximates the sketch of A n B: a register stays non-zero only
        where both inputs are. Unlike union this is not exact; a shared
        register may hold a rank contributed by different elements on each
        side. Same compatibility rules as union.
        """
        self._check_compatible(other)
        result = self._empty_like()
        result._registers = self._registers.merge_min(other._registers)
        result._zeros = result._registers.count_zeros()
        return result

    def intersect_in_place(self, other: Sketch) -> None:
        """Lower self's registers to the element-wise min with other's."""
        self._check_compatible(other)
        if other is self:
            return
        self._registers.merge_min_in_place(other._registers)
        self._zeros = self._registers.count_zeros()

    def intersection_estimate(self, other: Sketch) -> float:
        """|A| + |B| - |A u B|, clamped to >= 0.

        The variance is larger than either operand's because three noisy
        estimates are combined.
        """
        self._check_compatible(other, same_estimator=True)
        union_estimate = self.union(other).estimate()
        return max(0.0, self.estimate() + other.estimate() - union_estimate)

    def difference_estimate(self, other: Sketch) -> float:
        """|A \\ B| estimated as |A u B| - |B|, clamped to >= 0."""
        self._check_compatible(other, same_estimator=True)
        return max(0.0, self.union(other).estimate() - other.estimate())

    def jaccard_index(self, other: Sketch) -> float:
        """|A n B| / |A u B| in [0, 1]; 0.0 when both sketches are empty."""
        self._check_compatible(other, same_estimator=True)
        union_estimate = self.union(other).estimate()
        if union_estimate <= 0.0:
            return 0.0
        intersection = max(0.0, self.estimate() + other.estimate() - union_estimate)
        return min(1.0, intersection / union_estimate)

    def may_contain(self, element: Element) -> bool:
        """False only if `element` was certainly never inserted."""
        index, rank = self._hasher.split(element)
        return self._registers.get(index) >= rank

    def is_empty(self) -> bool:
        return self._zeros == self._registers.length

    def is_full(self) -> bool:
        """Every register holds its largest reachable value."""
        top = self.max_register_value
        return all(value == top for value in self._registers)

    @property
    def number_of_zero_registers(self) -> int:
        return self._zeros

    def number_of_non_zero_registers(self) -> int:
        return self._registers.length - self._zeros

    def registers(self) -> list[int]:
        return self._registers.to_list()

    def register(self, index: int) -> int:
        return self._registers.get(index)

    def histogram(self) -> list[int]:
        """Count of registers holding each value 0..2^b - 1."""
        return self._registers.histogram()

    def register_histogram(self) -> RegisterHistogram:
        return RegisterHistogram.from_registers(self._registers, self._precision, self.hash_bits)

    def harmonic_sum(self) -> float:
        """sum over registers of 2^-value."""
        return self.register_histogram().harmonic_sum()

    def standard_error(self) -> float:
        """Theoretical relative standard error, 1.04 / sqrt(m)."""
        return get_profile(self._precision).standard_error

    def memory_bytes(self) -> int:
        """Bytes held by the packed register words."""
        return self._registers.memory_bytes()

    # -- serialization ---------------------------------------------------

    def to_bytes(self) -> bytes:
        from hyperloglog_lite.sketch.codec import serialize

        return serialize(self)

    @classmethod
    def from_bytes(cls, data: bytes, config: SketchConfig | None = None) -> Sketch:
        from hyperloglog_lite.sketch.codec import deserialize

        return deserialize(data, config)

    # -- compatibility and value semantics -------------------------------

    def _check_compatible(self, other: Sketch, same_estimator: bool = False) -> None:
        if not isinstance(other, Sketch):
            raise TypeError(f"Expected a Sketch, got {type(other).__name__}")
        mismatches = []
        if self._precision != other._precision:
            mismatches.append(f"precision {self._precision} vs {other._precision}")
        if self.register_width != other.register_width:
            mismatches.append(
                f"register width {self.register_width} vs {other.register_width}"
            )
        if self.hash_seed != other.hash_seed:
            mismatches.append(f"hash seed {self.hash_seed} vs {other.hash_seed}")
        if self.hash_bits != other.hash_bits:
            mismatches.append(f"hash bits {self.hash_bits} vs {other.hash_bits}")
        if same_estimator and self.estimator is not other.estimator:
            mismatches.append(
                f"estimator {self.estimator.value} vs {other.estimator.value}"
            )
        if mismatches:
            raise ConfigurationMismatch("Incompatible sketches: " + ", ".join(mismatches))

    def copy(self) -> Sketch:
        clone = self._empty_like()
        clone._registers = self._registers.copy()
        clone._zeros = self._zeros
        return clone

    def __or__(self, other: object) -> Sketch:
        if not isinstance(other, Sketch):
            return NotImplemented
        return self.union(other)

    def __ior__(self, other: object) -> Sketch:
        if not isinstance(other, Sketch):
            return NotImplemented
        self.merge_in_place(other)
        return self

    def __and__(self, other: object) -> Sketch:
        if not isinstance(other, Sketch):
            return NotImplemented
        return self.intersection(other)

    def __iand__(self, other: object) -> Sketch:
        if not isinstance(other, Sketch):
            return NotImplemented
        self.intersect_in_place(other)
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sketch):
            return NotImplemented
        return (
            self._precision == other._precision
            and self.hash_seed == other.hash_seed
            and self.hash_bits == other.hash_bits
            and self._registers == other._registers
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Sketch(precision={self._precision}, register_width={self.register_width}, "
            f"hash_seed={self.hash_seed}, estimator={self.estimator.value})"
        )
