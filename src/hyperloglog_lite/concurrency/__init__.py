"""Helpers for using sketches from more than one thread.

  - union_all / build_sharded: per-shard sketches folded by union, no locks
  - LockedSketch: single-lock wrapper for one sketch shared by threads
"""
from hyperloglog_lite.concurrency.locked import LockedSketch
from hyperloglog_lite.concurrency.sharded import build_sharded, partition, union_all

__all__ = [
    "LockedSketch",
    "build_sharded",
    "partition",
    "union_all",
]
