"""
RIDE_INTERPOLATION.PY - Reading a ride at a point in time

Checkpoints are anything with .time_fraction and .boost_value (the
RideCheckpoint dataclass, or a persisted RideCheckpointRecord row).

Times arrive as datetimes or ISO-8601 strings. Aware values are converted
to naive UTC, which is how the database stores them.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from core.rounding import clamp, round_to

TimeLike = Union[datetime, str]


def interpolate_ride_value(checkpoints: Sequence, elapsed_fraction: float) -> float:
    """Linear interpolation between bracketing checkpoints, 6 dp."""
    if not checkpoints:
        return 0.0

    fraction = clamp(elapsed_fraction, 0.0, 1.0)
    first = checkpoints[0]
    last = checkpoints[-1]

    if fraction <= first.time_fraction:
        return first.boost_value
    if fraction >= last.time_fraction:
        return last.boost_value

    lower, upper = first, checkpoints[1]
    for i in range(len(checkpoints) - 1):
        if checkpoints[i].time_fraction <= fraction < checkpoints[i + 1].time_fraction:
            lower, upper = checkpoints[i], checkpoints[i + 1]
            break

    span = upper.time_fraction - lower.time_fraction
    if span <= 0:
        return lower.boost_value

    t = (fraction - lower.time_fraction) / span
    return round_to(lower.boost_value + t * (upper.boost_value - lower.boost_value), 6)


def to_utc_naive(value: TimeLike) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_elapsed_fraction(start: TimeLike, end: TimeLike, now: Optional[TimeLike] = None) -> float:
    """
    (now - start) / (end - start). May exceed 1 past the end.

    A degenerate interval (end <= start) is treated as already ended.
    """
    start_dt = to_utc_naive(start)
    end_dt = to_utc_naive(end)
    now_dt = to_utc_naive(now) if now is not None else utc_now()

    total = (end_dt - start_dt).total_seconds()
    if total <= 0:
        return 1.0
    return (now_dt - start_dt).total_seconds() / total


def has_ride_ended(start: TimeLike, end: TimeLike, now: Optional[TimeLike] = None) -> bool:
    return calculate_elapsed_fraction(start, end, now) >= 1


def get_max_ride_value(checkpoints: Sequence, crash_fraction: float) -> float:
    """Largest stored value at or before the crash."""
    eligible = [cp.boost_value for cp in checkpoints if cp.time_fraction <= crash_fraction]
    if not eligible:
        return 0.0
    return max(eligible)


__all__ = [
    "interpolate_ride_value",
    "calculate_elapsed_fraction",
    "has_ride_ended",
    "get_max_ride_value",
    "to_utc_naive",
    "utc_now",
]
