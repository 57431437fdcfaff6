"""Seeded hashing and the (index, rank) split that drives every insert.

An element is first canonicalized to bytes, then hashed together with
an 8-byte seed using SHA-256 truncated to the configured hash width
(32 or 64 bits). The code is split in two:

    index = top p bits                  -> which register to update
    rank  = 1 + leading zeros of the    -> candidate register value
            remaining (hash_bits - p) bits

An all-zero remainder gives the largest possible rank, hash_bits - p + 1.
Ranks larger than the register can hold (2^b - 1) are clamped; sketch
construction rejects widths for which that could happen, so clamping is
a safety net rather than a normal path.

Canonicalization prefixes each value with a one-byte type tag so that
"1", b"1" and 1 hash differently, and length-prefixes container members so
("ab", "c") and ("a", "bc") stay distinct. Set members and dict items
are sorted by their encoding, so the result never depends on
PYTHONHASHSEED or insertion order. Other objects must define
__bytes__; repr() is never used. Empty str/bytes have no tag: they all
map to the digest of the seed alone, a fixed default code.
"""
from __future__ import annotations

import hashlib
import struct

from hyperloglog_lite.domain.config import SUPPORTED_HASH_BITS
from hyperloglog_lite.domain.errors import ConfigurationMismatch
from hyperloglog_lite.domain.types import Element, HashCode

MAX_SEED = (1 << 64) - 1


def _lp(data: bytes) -> bytes:
    """Length-prefix a byte string with a 4-byte big-endian length."""
    return struct.pack("!I", len(data)) + data


def canonicalize(element: Element) -> bytes:
    """Deterministic byte form of an element, independent of process and platform.

    Raises TypeError for objects with no stable encoding: anything that
    is not a str, bytes-like, None, bool, int, float, tuple, list, set,
    frozenset or dict of those, and does not define __bytes__.
    """
    if isinstance(element, (bytes, bytearray, memoryview)):
        data = bytes(element)
        return b"b" + data if data else b""
    if isinstance(element, str):
        return b"s" + element.encode("utf-8") if element else b""
    if element is None:
        return b"n"
    if isinstance(element, bool):
        return b"?" + (b"\x01" if element else b"\x00")
    if isinstance(element, int) or hasattr(element, "__index__"):
        n = int(element)
        return b"i" + n.to_bytes((n.bit_length() + 8) // 8, "little", signed=True)
    if isinstance(element, float):
        return b"f" + struct.pack("<d", element)
    if isinstance(element, (tuple, list)):
        return b"t" + b"".join(_lp(canonicalize(item)) for item in element)
    if isinstance(element, (set, frozenset)):
        return b"S" + b"".join(sorted(_lp(canonicalize(item)) for item in element))
    if isinstance(element, dict):
        pairs = (
            _lp(_lp(canonicalize(key)) + _lp(canonicalize(value)))
            for key, value in element.items()
        )
        return b"d" + b"".join(sorted(pairs))
    if hasattr(element, "__bytes__"):
        return b"o" + bytes(element)
    raise TypeError(
        f"Cannot hash {type(element).__name__!r} deterministically; "
        f"pass bytes, str, numbers, containers of those, or define __bytes__"
    )


class HashStrategy:
    """Maps elements to hash codes and splits codes into (index, rank).

    Parameters:
        precision: p, the number of index bits.
        register_width: b, bits per register; ranks clamp to 2^b - 1.
        seed: Unsigned 64-bit seed mixed into every hash.
        hash_bits: Width of the hash code, 32 or 64.
    """

    __slots__ = (
        "_precision", "_register_width", "_seed", "_seed_bytes",
        "_hash_bits", "_remainder_bits", "_remainder_mask", "_max_value",
    )

    def __init__(
        self,
        precision: int,
        register_width: int,
        seed: int = 0,
        hash_bits: int = 32,
    ) -> None:
        if hash_bits not in SUPPORTED_HASH_BITS:
            raise ConfigurationMismatch(
                f"hash_bits must be one of {SUPPORTED_HASH_BITS}, got {hash_bits}"
            )
        if not (0 <= seed <= MAX_SEED):
            raise ConfigurationMismatch(f"Hash seed must be an unsigned 64-bit int, got {seed}")
        if not (0 < precision < hash_bits):
            raise ConfigurationMismatch(
                f"Precision {precision} does not fit a {hash_bits}-bit hash"
            )
        self._precision = precision
        self._register_width = register_width
        self._seed = seed
        self._seed_bytes = seed.to_bytes(8, "little")
        self._hash_bits = hash_bits
        self._remainder_bits = hash_bits - precision
        self._remainder_mask = (1 << self._remainder_bits) - 1
        self._max_value = (1 << register_width) - 1

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def hash_bits(self) -> int:
        return self._hash_bits

    def hash(self, element: Element) -> HashCode:
        """Hash an element to an unsigned hash_bits-wide code."""
        digest = hashlib.sha256(self._seed_bytes + canonicalize(element)).digest()
        # Take the first 8 bytes as a big-endian uint64, keep the top hash_bits
        return int.from_bytes(digest[:8], "big") >> (64 - self._hash_bits)

    def index(self, code: HashCode) -> int:
        """Top p bits of the code, in [0, 2^p)."""
        return code >> self._remainder_bits

    def rank(self, code: HashCode) -> int:
        """1 + leading zeros of the remainder, clamped to 2^b - 1."""
        remainder = code & self._remainder_mask
        rank = self._remainder_bits - remainder.bit_length() + 1
        if rank > self._max_value:
            return self._max_value
        return rank

    def split(self, element: Element) -> tuple[int, int]:
        """Hash an element and return its (register index, rank)."""
        code = self.hash(element)
        return self.index(code), self.rank(code)
