"""
SEEDED_RANDOM.PY - Deterministic pseudo-random source for rides
===============================================================

A ride must be reproducible from its seed alone, on any machine, forever.
This generator never touches wall-clock time or OS entropy.

Algorithm:
    - seed string hashed with the 31-multiplier string hash, wrapped to a
      signed 32-bit integer; state = abs(hash) or 1
    - glibc LCG: state = (state * 1103515245 + 12345) & 0x7FFFFFFF
    - next() = state / 2**31, so values are in [0, 1)

Samplers:
    normal(mean, std_dev)  Box-Muller
    gamma(shape)           Marsaglia-Tsang (shape < 1 boosted)
    beta(a, b)             gamma(a) / (gamma(a) + gamma(b))

Namespacing:
    Each independent decision draws from its own generator built with
    SeededRandom.salted("label", seed) -> SeededRandom("label:" + seed).
    Changing how one decision consumes numbers never shifts another's.

Usage:
    from core.seeded_random import SeededRandom

    rng = SeededRandom.salted("duration", seed)
    seconds = rng.next_range(6.0, 12.0)
"""

import math

LCG_MULTIPLIER = 1103515245
LCG_INCREMENT = 12345
LCG_MASK = 0x7FFFFFFF
LCG_MODULUS = 0x80000000

# Salt labels, one per independent decision
SALT_DURATION = "duration"
SALT_CRASH = "crash"
SALT_PARAMS = "params"
SALT_SHAPE = "shape"
SALT_START_BIAS = "start-bias"
SALT_PEAK_DELAY = "peak-delay"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def hash_seed(seed: str) -> int:
    """Hash a seed string to its initial (non-zero) generator state."""
    h = 0
    for ch in seed:
        h = _to_int32((h << 5) - h + ord(ch))
    return abs(h) or 1


class SeededRandom:
    """Single-owner deterministic generator. Not shared across calls."""

    def __init__(self, seed: str):
        self.seed = seed
        self._state = hash_seed(seed)

    @classmethod
    def salted(cls, label: str, seed: str) -> "SeededRandom":
        return cls(f"{label}:{seed}")

    def next(self) -> float:
        """Next value in [0, 1)."""
        self._state = (self._state * LCG_MULTIPLIER + LCG_INCREMENT) & LCG_MASK
        return self._state / LCG_MODULUS

    def next_range(self, lo: float, hi: float) -> float:
        return lo + self.next() * (hi - lo)

    def normal(self, mean: float = 0.0, std_dev: float = 1.0) -> float:
        """Box-Muller normal sample."""
        u = 0.0
        v = 0.0
        while u == 0.0:
            u = self.next()
        while v == 0.0:
            v = self.next()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return mean + z * std_dev

    def gamma(self, shape: float) -> float:
        """
        Gamma(shape, 1) sample via Marsaglia-Tsang.

        For shape < 1 uses Gamma(k) = Gamma(k + 1) * U^(1/k).
        """
        if shape <= 0:
            raise ValueError(f"gamma shape must be positive, got {shape}")

        if shape < 1:
            u = 0.0
            while u == 0.0:
                u = self.next()
            return self.gamma(shape + 1.0) * u ** (1.0 / shape)

        d = shape - 1.0 / 3.0
        c = 1.0 / math.sqrt(9.0 * d)
        while True:
            x = self.normal()
            v = 1.0 + c * x
            if v <= 0:
                continue
            v = v * v * v
            u = self.next()
            if u == 0.0:
                continue
            if u < 1.0 - 0.0331 * (x ** 4):
                return d * v
            if math.log(u) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
                return d * v

    def beta(self, alpha: float, beta: float) -> float:
        x = self.gamma(alpha)
        y = self.gamma(beta)
        return x / (x + y)


__all__ = [
    "SeededRandom",
    "hash_seed",
    "SALT_DURATION",
    "SALT_CRASH",
    "SALT_PARAMS",
    "SALT_SHAPE",
    "SALT_START_BIAS",
    "SALT_PEAK_DELAY",
]
