"""
RIDE_GENERATOR.PY - Deterministic ride curve synthesis
======================================================

A ride is a short list of checkpoints (time_fraction, boost_value) that the
boost model reads at lock time. The curve rises and falls through a few
turning points, then decays to 0 after the crash.

Pipeline (every step is a pure values -> values function):

    1. floor        all pre-final values start at the strength-based floor,
                    the final checkpoint is 0
    2. shape        turning points (start, peak, valley, ..., valley) placed
                    across the pre-crash checkpoints, cosine-eased fill with
                    volatility jitter
    3. tail         quadratic decay from the last pre-crash value to 0
    4. passes       start bias -> initial climb -> peak delay ->
                    (floor -> unique max -> no flats, repeated until stable)

Every stored value is rounded to 6 dp on write, so regenerating a ride from
the same seed and arguments is byte-identical.

Randomness comes from separately salted generators ("shape", "start-bias",
"peak-delay") so each decision has its own sequence.

Usage:
    from core.ride_generator import generate_ride

    ride = generate_ride(seed, checkpoint_count=12, volatility=0.5,
                         min_boost_pct=0.05, max_boost_pct=0.5,
                         ticket_strength=0.4, duration_seconds=9.0,
                         crash_fraction=0.72, min_peak_delay_seconds=2.0)
    ride.checkpoints[0].time_fraction   # 0.0
    ride.checkpoints[-1].boost_value    # 0.0
"""

import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.log_sanitizer import seed_fingerprint
from core.rounding import clamp, round_to
from core.seeded_random import (
    SALT_PEAK_DELAY,
    SALT_SHAPE,
    SALT_START_BIAS,
    SeededRandom,
)

logger = logging.getLogger(__name__)

MIN_CHECKPOINTS = 6

# Starting floor sits 1%..15% into the range depending on strength
FLOOR_BASE_RATE = 0.01
FLOOR_STRENGTH_RATE = 0.14

START_LEVEL_SPREAD = 0.25
MAX_PEAKS = 4
HIGHEST_PEAK_BAND = (0.86, 0.98)
OTHER_PEAK_BAND = (0.52, 0.84)
VALLEY_BAND = (0.18, 0.44)
FINAL_VALLEY_BAND = (0.18, 0.30)
ALTERNATION_STEP_RATE = 0.08
PEAK_DOWNSHIFT_RATE = 0.02
JITTER_RATE = 0.12

START_BIAS_RATE = 0.7
INITIAL_CLIMB_SECONDS = 2.0
CLIMB_STEP_RATE = 0.02
PEAK_BUMP_RATE = 0.03

# Values are stored at 6 dp; anything closer than this is "equal"
FLAT_EPSILON = 5e-7
TIE_STEP = 1e-5
NUDGE_RATE = 0.005
MAX_STABILIZE_ROUNDS = 10


# ============================================================================
# TYPES
# ============================================================================

@dataclass
class RideCheckpoint:
    index: int
    time_fraction: float
    boost_value: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GeneratedRide:
    checkpoints: List[RideCheckpoint]
    seed: str
    applied_passes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "checkpoints": [cp.to_dict() for cp in self.checkpoints],
            "applied_passes": list(self.applied_passes),
        }


@dataclass(frozen=True)
class RideContext:
    """Everything the passes need besides the values themselves."""
    seed: str
    times: Tuple[float, ...]
    boundary: int
    floor: float
    min_boost: float
    max_boost: float
    span: float
    strength: float
    duration_seconds: Optional[float]
    delay_fraction: float

    @property
    def delay_index(self) -> int:
        for i, t in enumerate(self.times):
            if t >= self.delay_fraction - 1e-9:
                return i
        return len(self.times) - 1


Values = List[float]
RidePass = Callable[[Sequence[float], RideContext], Values]


def _r6(value: float) -> float:
    return round_to(value, 6)


def _pre_crash_max(values: Sequence[float], ctx: RideContext) -> Tuple[float, int]:
    pre = values[: ctx.boundary + 1]
    peak = max(pre)
    first = next(i for i, v in enumerate(pre) if abs(v - peak) < FLAT_EPSILON)
    return peak, first


# ============================================================================
# SHAPE SYNTHESIS
# ============================================================================

def _allocate_node_indices(rng: SeededRandom, boundary: int, segments: int) -> List[int]:
    """Integer node positions 0..boundary, every segment at least 1 apart."""
    weights = [0.5 + rng.next() for _ in range(segments)]
    total = sum(weights)
    extra = boundary - segments
    lengths = [1 + int(math.floor(extra * w / total)) for w in weights]

    remainder = boundary - sum(lengths)
    j = 0
    while remainder > 0:
        lengths[j % segments] += 1
        remainder -= 1
        j += 1

    indices = [0]
    for length in lengths:
        indices.append(indices[-1] + length)
    return indices


def _turning_points(ctx: RideContext, rng: SeededRandom, volatility: float) -> List[Tuple[int, float]]:
    lo = ctx.min_boost
    span = ctx.span
    start_level = ctx.floor + span * rng.next_range(0.0, START_LEVEL_SPREAD) * volatility

    if ctx.boundary == 1:
        peak = lo + span * rng.next_range(*HIGHEST_PEAK_BAND)
        return [(0, start_level), (1, peak)]

    drawn = 1 + int(rng.next() * MAX_PEAKS)
    k = max(1, min(drawn, ctx.boundary // 2))
    indices = _allocate_node_indices(rng, ctx.boundary, 2 * k)

    # First peak may not open before the minimum peak delay
    delay_index = ctx.delay_index
    if indices[1] < delay_index:
        indices[1] = max(indices[1], min(delay_index, indices[2] - 1))

    peak_nodes = list(range(1, 2 * k, 2))
    eligible = [n for n in peak_nodes if indices[n] >= delay_index] or [peak_nodes[-1]]
    highest = eligible[int(rng.next() * len(eligible))]

    top = lo + span * rng.next_range(*HIGHEST_PEAK_BAND)
    values = [start_level]
    shift = 0
    for node in range(1, 2 * k + 1):
        if node == highest:
            values.append(top)
        elif node % 2 == 1:
            v = lo + span * rng.next_range(*OTHER_PEAK_BAND)
            if v >= top:
                shift += 1
                v = top - span * PEAK_DOWNSHIFT_RATE * shift
            values.append(v)
        elif node == 2 * k:
            values.append(lo + span * rng.next_range(*FINAL_VALLEY_BAND))
        else:
            values.append(lo + span * rng.next_range(*VALLEY_BAND))

    # Alternation: every up-step and down-step clears min_step
    min_step = span * ALTERNATION_STEP_RATE
    for node in range(1, len(values)):
        prev = values[node - 1]
        if node % 2 == 1 and values[node] < prev + min_step:
            values[node] = min(ctx.max_boost, prev + min_step)
        elif node % 2 == 0 and values[node] > prev - min_step:
            values[node] = max(ctx.floor, prev - min_step)

    return list(zip(indices, values))


def _eased_fill(values: Sequence[float], ctx: RideContext, nodes: List[Tuple[int, float]],
                rng: SeededRandom, volatility: float) -> Values:
    out = list(values)
    node_indices = {idx for idx, _ in nodes}
    jitter_scale = volatility * ctx.span * JITTER_RATE

    for (ia, va), (ib, vb) in zip(nodes, nodes[1:]):
        for i in range(ia, ib + 1):
            t = (i - ia) / (ib - ia)
            eased = 0.5 - 0.5 * math.cos(math.pi * t)
            v = va + (vb - va) * eased
            if i not in node_indices:
                v += (rng.next() - 0.5) * jitter_scale
            out[i] = _r6(clamp(v, ctx.floor, ctx.max_boost))
    return out


def apply_tail_decay(values: Sequence[float], ctx: RideContext) -> Values:
    """Quadratic decay from the last pre-crash value to 0 at the end."""
    out = list(values)
    last = len(out) - 1
    b = ctx.boundary
    vb = out[b]
    t_b = ctx.times[b]
    for i in range(b + 1, last):
        t = (ctx.times[i] - t_b) / (1.0 - t_b)
        out[i] = _r6(vb * (1.0 - t) ** 2)
    out[last] = 0.0
    return out


# ============================================================================
# ENFORCEMENT PASSES
# ============================================================================

def apply_start_bias(values: Sequence[float], ctx: RideContext) -> Values:
    """Stronger tickets are more likely to open on an up-step."""
    out = list(values)
    rng = SeededRandom.salted(SALT_START_BIAS, ctx.seed)
    u = rng.next()
    if ctx.boundary < 1 or ctx.strength <= 0:
        return out
    if out[1] < out[0] and u < START_BIAS_RATE * ctx.strength:
        out[0], out[1] = out[1], out[0]
    return out


def apply_initial_climb(values: Sequence[float], ctx: RideContext) -> Values:
    """Monotonic increase over the first two seconds of elapsed time."""
    out = list(values)
    if not ctx.duration_seconds or ctx.duration_seconds <= 0:
        return out
    min_delta = max(ctx.span * CLIMB_STEP_RATE, 1e-6)
    for i in range(1, ctx.boundary + 1):
        if ctx.times[i] * ctx.duration_seconds > INITIAL_CLIMB_SECONDS:
            break
        if out[i] < out[i - 1] + min_delta:
            out[i] = _r6(min(ctx.max_boost, out[i - 1] + min_delta))
    return out


def apply_peak_delay(values: Sequence[float], ctx: RideContext) -> Values:
    """Move the ride's maximum to at or after the minimum peak delay."""
    out = list(values)
    if ctx.delay_fraction <= 0 or ctx.boundary < 1:
        return out

    peak, first = _pre_crash_max(out, ctx)
    delay_index = ctx.delay_index
    if first >= delay_index:
        return out

    candidates = list(range(delay_index, ctx.boundary + 1))
    if not candidates:
        return out

    rng = SeededRandom.salted(SALT_PEAK_DELAY, ctx.seed)
    chosen = candidates[int(rng.next() * len(candidates))]
    bump = max(ctx.span * PEAK_BUMP_RATE, TIE_STEP)
    top = _r6(min(ctx.max_boost, peak + bump))
    out[chosen] = top

    early = [j for j in range(delay_index) if out[j] >= top - FLAT_EPSILON]
    for pos, j in enumerate(early):
        out[j] = _r6(max(ctx.floor, top - bump * (len(early) - pos)))
    return out


def apply_pre_crash_floor(values: Sequence[float], ctx: RideContext) -> Values:
    out = list(values)
    for i in range(ctx.boundary + 1):
        if out[i] < ctx.floor:
            out[i] = _r6(ctx.floor)
    return out


def apply_unique_max(values: Sequence[float], ctx: RideContext) -> Values:
    """Keep the first maximum, step every later tie down by increasing epsilon."""
    out = list(values)
    peak, first = _pre_crash_max(out, ctx)
    steps = 0
    for i in range(first + 1, ctx.boundary + 1):
        if abs(out[i] - peak) < FLAT_EPSILON:
            steps += 1
            out[i] = _r6(peak - TIE_STEP * steps)
    return out


def _trend_direction(values: Sequence[float], i: int, ctx: RideContext) -> int:
    if i >= 2 and abs(values[i - 1] - values[i - 2]) >= FLAT_EPSILON:
        return 1 if values[i - 1] > values[i - 2] else -1
    if i + 1 <= ctx.boundary and abs(values[i + 1] - values[i]) >= FLAT_EPSILON:
        return 1 if values[i + 1] > values[i] else -1
    return 1


def apply_no_flats(values: Sequence[float], ctx: RideContext) -> Values:
    """Nudge apart adjacent pre-crash values that round to the same number."""
    out = list(values)
    step = max(ctx.span * NUDGE_RATE, TIE_STEP)

    for i in range(1, ctx.boundary + 1):
        if abs(out[i] - out[i - 1]) >= FLAT_EPSILON:
            continue

        peak, first = _pre_crash_max(out, ctx)
        ceiling = peak - TIE_STEP

        if i == first:
            target, anchor, directions = i - 1, out[i], (-1,)
        else:
            d = _trend_direction(out, i, ctx)
            target, anchor, directions = i, out[i - 1], (d, -d)

        for d in directions:
            candidate = _r6(clamp(anchor + d * step, ctx.floor, ceiling))
            if abs(candidate - anchor) >= FLAT_EPSILON:
                out[target] = candidate
                break
    return out


OPENING_PASSES: List[Tuple[str, RidePass]] = [
    ("start_bias", apply_start_bias),
    ("initial_climb", apply_initial_climb),
    ("peak_delay", apply_peak_delay),
]

STABILIZING_PASSES: List[Tuple[str, RidePass]] = [
    ("pre_crash_floor", apply_pre_crash_floor),
    ("unique_max", apply_unique_max),
    ("no_flats", apply_no_flats),
]


def run_passes(values: Sequence[float], ctx: RideContext) -> Tuple[Values, List[str]]:
    """Apply every enforcement pass in order. Returns (values, names that changed something)."""
    current = list(values)
    changed: List[str] = []

    def _apply(name: str, fn: RidePass) -> bool:
        nonlocal current
        result = fn(current, ctx)
        if result != current:
            changed.append(name)
            current = result
            return True
        return False

    for name, fn in OPENING_PASSES:
        _apply(name, fn)

    for _ in range(MAX_STABILIZE_ROUNDS):
        moved = False
        for name, fn in STABILIZING_PASSES:
            moved = _apply(name, fn) or moved
        if not moved:
            break
    else:
        logger.debug("Ride passes did not settle for %s", seed_fingerprint(ctx.seed))
        _apply("pre_crash_floor", apply_pre_crash_floor)
        _apply("unique_max", apply_unique_max)

    return current, changed


# ============================================================================
# ENTRY POINT
# ============================================================================

def build_context(
    seed: str,
    checkpoint_count: int,
    min_boost_pct: float,
    max_boost_pct: float,
    ticket_strength: float = 0.0,
    duration_seconds: Optional[float] = None,
    crash_fraction: Optional[float] = None,
    min_peak_delay_seconds: float = 0.0,
) -> RideContext:
    n = max(MIN_CHECKPOINTS, int(checkpoint_count))
    times = tuple(_r6(i / (n - 1)) for i in range(n))
    strength = clamp(ticket_strength or 0.0, 0.0, 1.0)
    span = max_boost_pct - min_boost_pct
    floor = min_boost_pct
    if span > 0:
        floor = _r6(min_boost_pct + span * (FLOOR_BASE_RATE + FLOOR_STRENGTH_RATE * strength))

    crash = 1.0 if crash_fraction is None else crash_fraction
    boundary = 0
    for i in range(n - 1):
        if times[i] < crash:
            boundary = i

    delay_fraction = 0.0
    if duration_seconds and duration_seconds > 0 and min_peak_delay_seconds > 0:
        delay_fraction = min_peak_delay_seconds / duration_seconds

    return RideContext(
        seed=seed,
        times=times,
        boundary=boundary,
        floor=floor,
        min_boost=min_boost_pct,
        max_boost=max_boost_pct,
        span=span,
        strength=strength,
        duration_seconds=duration_seconds,
        delay_fraction=delay_fraction,
    )


def generate_ride(
    seed: str,
    checkpoint_count: int,
    volatility: float,
    min_boost_pct: float,
    max_boost_pct: float,
    ticket_strength: float = 0.0,
    duration_seconds: Optional[float] = None,
    crash_fraction: Optional[float] = None,
    min_peak_delay_seconds: float = 0.0,
) -> GeneratedRide:
    """
    Generate the ride checkpoints for a seed.

    Args:
        seed: Reward seed (see core.ride_params.generate_seed)
        checkpoint_count: Number of checkpoints, floored at 6
        volatility: Jitter / start-level spread, 0.25..0.85 when derived
        min_boost_pct, max_boost_pct: Operator range for pre-crash values
        ticket_strength: 0..1, raises the floor and biases the opening up-step
        duration_seconds: Needed for the initial climb and peak delay
        crash_fraction: Crash point; defaults to the end of the ride
        min_peak_delay_seconds: Earliest time the maximum may occur

    Returns:
        GeneratedRide with checkpoints[0].time_fraction == 0,
        checkpoints[-1].time_fraction == 1 and checkpoints[-1].boost_value == 0
    """
    ctx = build_context(
        seed,
        checkpoint_count,
        min_boost_pct,
        max_boost_pct,
        ticket_strength=ticket_strength,
        duration_seconds=duration_seconds,
        crash_fraction=crash_fraction,
        min_peak_delay_seconds=min_peak_delay_seconds,
    )
    n = len(ctx.times)
    values: Values = [ctx.floor] * (n - 1) + [0.0]
    applied: List[str] = []

    if ctx.boundary >= 1 and ctx.span > 0:
        rng = SeededRandom.salted(SALT_SHAPE, seed)
        nodes = _turning_points(ctx, rng, volatility)
        values = _eased_fill(values, ctx, nodes, rng, volatility)
        values, applied = run_passes(values, ctx)

    values = apply_tail_decay(values, ctx)

    checkpoints = [
        RideCheckpoint(index=i, time_fraction=ctx.times[i], boost_value=values[i])
        for i in range(n)
    ]
    return GeneratedRide(checkpoints=checkpoints, seed=seed, applied_passes=applied)


__all__ = [
    "RideCheckpoint",
    "GeneratedRide",
    "RideContext",
    "build_context",
    "generate_ride",
    "apply_start_bias",
    "apply_initial_climb",
    "apply_peak_delay",
    "apply_pre_crash_floor",
    "apply_unique_max",
    "apply_no_flats",
    "apply_tail_decay",
    "run_passes",
]
