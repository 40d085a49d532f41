"""
ROUNDING.PY - Shared numeric rounding for the ride engine

Every persisted or compared ride value goes through round_to() so that
repeated derivations of the same ride are byte-stable.

Python's built-in round() uses banker's rounding (round(0.5) == 0). Ride
values need half-up rounding so that 0.0000005 -> 0.000001 everywhere.

Usage:
    from core.rounding import round_to, clamp

    value = round_to(0.1234567, 6)   # 0.123457
    pct = clamp(raw, 0.01, 0.99)
"""

import math


def round_to(value: float, decimals: int) -> float:
    """Round half-up to a fixed number of decimal places."""
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


def round_half_up(value: float) -> int:
    """Round half-up to the nearest integer."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


__all__ = [
    "round_to",
    "round_half_up",
    "clamp",
]
