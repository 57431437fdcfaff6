"""Shared type aliases used across the sketch packages."""
from __future__ import annotations

from typing import Any, TypeAlias

Element: TypeAlias = Any          # str, bytes, numbers, containers of those, or __bytes__ objects
HashCode: TypeAlias = int         # unsigned, hash_bits wide
RegisterValue: TypeAlias = int    # unsigned, register_width wide
Precision: TypeAlias = int        # log2 of the register count
