"""Register storage: densely bit-packed fixed-width counters.

Public API:
    PackedRegisterArray: m x b-bit registers in uint64 words, no padding
"""

from hyperloglog_lite.registers.packed import (
    WORD_BITS,
    PackedRegisterArray,
    bytes_needed,
    words_needed,
)

__all__ = [
    "WORD_BITS",
    "PackedRegisterArray",
    "bytes_needed",
    "words_needed",
]
