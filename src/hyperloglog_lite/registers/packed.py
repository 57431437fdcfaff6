"""Bit-packed register array: m counters of b bits with no padding.

The naive layout spends one byte per register (array('B')), wasting
3 bits per register at b=5. Here registers are laid end to end in a
little-endian bit stream stored as uint64 words:

    register i occupies stream bits [i*b, (i+1)*b)
    stream bit k lives in word k >> 6 at bit position k & 63

With b=5 and m=1024 that is 5120 bits = 80 words = 640 bytes instead
of 1024. Because 64 is not a multiple of 5, some registers straddle a
word boundary: the low part sits at the top of word w and the high part
at the bottom of word w+1. Both get() and the write path handle the
split with one extra shift/mask.

Bits past m*b in the final word are always zero. to_bytes() emits the
stream LSB-first, so register 0 lands in the lowest bits of byte 0.

Not thread-safe: neighbouring registers can share a word, so two
writers touching different indices can still race on the same word.
"""
from __future__ import annotations

import array
import struct
from typing import Iterable, Iterator

from hyperloglog_lite.domain.errors import ConfigurationMismatch

WORD_BITS = 64
_WORD_MASK = (1 << WORD_BITS) - 1


def words_needed(length: int, width: int) -> int:
    """ceil(length * width / 64)."""
    return (length * width + WORD_BITS - 1) // WORD_BITS


def bytes_needed(length: int, width: int) -> int:
    """ceil(length * width / 8)."""
    return (length * width + 7) // 8


class PackedRegisterArray:
    """Fixed-length array of `length` unsigned counters, `width` bits each.

    Parameters:
        length: Number of registers (m).
        width: Bits per register (b), 1..8.

    The word buffer is allocated once and never resized.
    """

    __slots__ = ("_length", "_width", "_mask", "_words")

    def __init__(self, length: int, width: int) -> None:
        if length < 1:
            raise ValueError(f"length must be positive, got {length}")
        if not (1 <= width <= 8):
            raise ValueError(f"width must be in [1, 8], got {width}")
        self._length = length
        self._width = width
        self._mask = (1 << width) - 1
        self._words = array.array("Q", bytes(8 * words_needed(length, width)))

    @classmethod
    def from_values(cls, values: Iterable[int], width: int) -> PackedRegisterArray:
        """Pack a sequence of register values.

        Raises ValueError if any value does not fit in `width` bits.
        """
        values = list(values)
        packed = cls(len(values), width)
        limit = packed._mask
        for i, value in enumerate(values):
            if not (0 <= value <= limit):
                raise ValueError(
                    f"Register {i} value {value} does not fit in {width} bits"
                )
            if value:
                packed._put(i, value)
        return packed

    @classmethod
    def from_bytes(cls, data: bytes, length: int, width: int) -> PackedRegisterArray:
        """Rebuild an array from the LSB-first byte stream of to_bytes().

        Raises ValueError if the byte count is wrong or padding bits past
        length * width are set.
        """
        expected = bytes_needed(length, width)
        if len(data) != expected:
            raise ValueError(
                f"Expected {expected} bytes for {length} x {width}-bit registers, "
                f"got {len(data)}"
            )
        packed = cls(length, width)
        padded = bytes(data) + bytes(8 * len(packed._words) - expected)
        decoded = struct.unpack(f"<{len(packed._words)}Q", padded)
        used_bits = length * width
        tail = used_bits % WORD_BITS
        if tail and decoded[-1] >> tail:
            raise ValueError("Non-zero padding bits after the last register")
        packed._words = array.array("Q", decoded)
        return packed

    @property
    def length(self) -> int:
        return self._length

    @property
    def width(self) -> int:
        return self._width

    @property
    def max_value(self) -> int:
        return self._mask

    def __len__(self) -> int:
        return self._length

    def get(self, index: int) -> int:
        """Read register `index`."""
        if not (0 <= index < self._length):
            raise IndexError(f"Register index {index} out of range [0, {self._length})")
        bit = index * self._width
        word_idx = bit >> 6   # // 64
        offset = bit & 63     # % 64
        value = self._words[word_idx] >> offset
        if offset + self._width > WORD_BITS:
            value |= self._words[word_idx + 1] << (WORD_BITS - offset)
        return value & self._mask

    __getitem__ = get

    def set_if_greater(self, index: int, value: int) -> bool:
        """Store `value` at `index` only if it exceeds the current value.

        Returns True if the register changed. Values wider than the
        register are clamped to its maximum first.
        """
        if value > self._mask:
            value = self._mask
        if value <= self.get(index):
            return False
        self._put(index, value)
        return True

    def _put(self, index: int, value: int) -> None:
        """Overwrite register `index` with `value`; no bounds or monotonicity check."""
        bit = index * self._width
        word_idx = bit >> 6
        offset = bit & 63
        words = self._words
        words[word_idx] = (
            (words[word_idx] & ~(self._mask << offset)) | (value << offset)
        ) & _WORD_MASK
        spill = offset + self._width - WORD_BITS
        if spill > 0:
            low_bits = WORD_BITS - offset
            high_mask = (1 << spill) - 1
            words[word_idx + 1] = (words[word_idx + 1] & ~high_mask) | (value >> low_bits)

    def __iter__(self) -> Iterator[int]:
        """Yield every register in index order.

        Streams the words through a small bit buffer instead of calling
        get() per index, so a full scan touches each word once.
        """
        width = self._width
        mask = self._mask
        remaining = self._length
        buf = 0
        nbits = 0
        for word in self._words:
            buf |= word << nbits
            nbits += WORD_BITS
            while nbits >= width and remaining:
                yield buf & mask
                buf >>= width
                nbits -= width
                remaining -= 1
            if not remaining:
                return

    def to_list(self) -> list[int]:
        return list(self)

    def histogram(self) -> list[int]:
        """Count of registers holding each value 0..2^b - 1."""
        counts = [0] * (self._mask + 1)
        for value in self:
            counts[value] += 1
        return counts

    def count_zeros(self) -> int:
        return sum(1 for value in self if value == 0)

    def _check_shape(self, other: PackedRegisterArray) -> None:
        if self._length != other._length or self._width != other._width:
            raise ConfigurationMismatch(
                f"Register arrays differ in shape: "
                f"{self._length}x{self._width} vs {other._length}x{other._width}"
            )

    def merge_max(self, other: PackedRegisterArray) -> PackedRegisterArray:
        """New array holding the element-wise max of self and other."""
        self._check_shape(other)
        merged = self.copy()
        merged._merge_from(other)
        return merged

    def merge_max_in_place(self, other: PackedRegisterArray) -> None:
        """Raise every register of self to at least other's value."""
        self._check_shape(other)
        if other is self:
            return
        self._merge_from(other)

    def _merge_from(self, other: PackedRegisterArray) -> None:
        for i, (mine, theirs) in enumerate(zip(self.to_list(), other)):
            if theirs > mine:
                self._put(i, theirs)

    def merge_min(self, other: PackedRegisterArray) -> PackedRegisterArray:
        """New array holding the element-wise min of self and other."""
        self._check_shape(other)
        merged = self.copy()
        merged._intersect_from(other)
        return merged

    def merge_min_in_place(self, other: PackedRegisterArray) -> None:
        """Lower every register of self to at most other's value."""
        self._check_shape(other)
        if other is self:
            return
        self._intersect_from(other)

    def _intersect_from(self, other: PackedRegisterArray) -> None:
        for i, (mine, theirs) in enumerate(zip(self.to_list(), other)):
            if theirs < mine:
                self._put(i, theirs)

    def copy(self) -> PackedRegisterArray:
        clone = PackedRegisterArray.__new__(PackedRegisterArray)
        clone._length = self._length
        clone._width = self._width
        clone._mask = self._mask
        clone._words = array.array("Q", self._words)
        return clone

    def clear(self) -> None:
        for i in range(len(self._words)):
            self._words[i] = 0

    def to_bytes(self) -> bytes:
        """LSB-first byte stream of exactly ceil(length * width / 8) bytes."""
        raw = struct.pack(f"<{len(self._words)}Q", *self._words)
        return raw[:bytes_needed(self._length, self._width)]

    def number_of_words(self) -> int:
        return len(self._words)

    def memory_bytes(self) -> int:
        """Bytes held by the packed word buffer."""
        return len(self._words) * self._words.itemsize

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackedRegisterArray):
            return NotImplemented
        return (
            self._length == other._length
            and self._width == other._width
            and self._words == other._words
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"PackedRegisterArray(length={self._length}, width={self._width}, "
            f"words={len(self._words)})"
        )
