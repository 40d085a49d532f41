"""
RIDE_PARAMS.PY - Seed and ride parameter derivation

Turns reward identity into a seed, and a seed into the hidden ride
parameters. These are intentionally not operator settings.

Functions:
    generate_seed(reward_id, user_id, profile_version_id) -> str (hex64)
    derive_ride_duration_seconds(seed, min_seconds, max_seconds) -> float
    derive_crash_fraction(seed, duration_seconds, min_crash_seconds) -> float
    derive_ride_params(seed, duration_seconds, min_crash_seconds) -> RideParams
"""

import hashlib
from dataclasses import dataclass, asdict
from typing import Any, Dict

from core.rounding import clamp, round_half_up, round_to
from core.seeded_random import (
    SALT_CRASH,
    SALT_DURATION,
    SALT_PARAMS,
    SeededRandom,
)

MIN_CHECKPOINTS = 6
CHECKPOINT_RANGE = (8, 18)
VOLATILITY_RANGE = (0.25, 0.85)

# Beta(10, 5) leans toward the back half of the ride
CRASH_BETA_ALPHA = 10.0
CRASH_BETA_BETA = 5.0
CRASH_FRACTION_MIN = 0.01
CRASH_FRACTION_MAX = 0.99


@dataclass(frozen=True)
class RideParams:
    checkpoint_count: int
    volatility: float
    crash_fraction: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def generate_seed(reward_id: str, user_id: str, profile_version_id: str) -> str:
    """SHA-256 hex digest of "reward:user:profile"."""
    payload = f"{reward_id}:{user_id}:{profile_version_id}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def derive_ride_duration_seconds(seed: str, min_seconds: float, max_seconds: float) -> float:
    rng = SeededRandom.salted(SALT_DURATION, seed)
    return round_to(rng.next_range(min_seconds, max_seconds), 3)


def derive_crash_fraction(seed: str, duration_seconds: float, min_crash_seconds: float) -> float:
    """
    Crash point as a fraction of the ride.

    A Beta(10, 5) draw is scaled into [min_crash_seconds, duration_seconds],
    converted to a fraction and clamped to [0.01, 0.99].
    """
    rng = SeededRandom.salted(SALT_CRASH, seed)
    sample = rng.beta(CRASH_BETA_ALPHA, CRASH_BETA_BETA)

    if duration_seconds <= 0:
        return round_to(clamp(sample, CRASH_FRACTION_MIN, CRASH_FRACTION_MAX), 4)

    min_crash = clamp(min_crash_seconds, 0.0, duration_seconds)
    crash_seconds = min_crash + sample * (duration_seconds - min_crash)
    fraction = clamp(crash_seconds / duration_seconds, CRASH_FRACTION_MIN, CRASH_FRACTION_MAX)
    return round_to(fraction, 4)


def derive_ride_params(seed: str, duration_seconds: float, min_crash_seconds: float) -> RideParams:
    rng = SeededRandom.salted(SALT_PARAMS, seed)
    checkpoint_count = max(MIN_CHECKPOINTS, round_half_up(rng.next_range(*CHECKPOINT_RANGE)))
    volatility = round_to(rng.next_range(*VOLATILITY_RANGE), 4)
    crash_fraction = derive_crash_fraction(seed, duration_seconds, min_crash_seconds)
    return RideParams(
        checkpoint_count=checkpoint_count,
        volatility=volatility,
        crash_fraction=crash_fraction,
    )


__all__ = [
    "RideParams",
    "generate_seed",
    "derive_ride_duration_seconds",
    "derive_crash_fraction",
    "derive_ride_params",
]
