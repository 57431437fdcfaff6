"""Element hashing: canonical encoding and the (index, rank) split.

Public API:
    HashStrategy: seeded hash, index/rank extraction
    canonicalize: deterministic byte form of an element
"""

from hyperloglog_lite.hashing.strategy import MAX_SEED, HashStrategy, canonicalize

__all__ = [
    "MAX_SEED",
    "HashStrategy",
    "canonicalize",
]
