"""The HyperLogLog sketch and its binary format.

Public API:
    Sketch: insert, estimate, union/merge/intersection algebra
    serialize / deserialize: header + packed register bytes
"""

from hyperloglog_lite.sketch.codec import HEADER_SIZE, deserialize, serialize
from hyperloglog_lite.sketch.sketch import Sketch

__all__ = [
    "HEADER_SIZE",
    "Sketch",
    "deserialize",
    "serialize",
]
