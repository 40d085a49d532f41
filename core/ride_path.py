"""
RIDE_PATH.PY - Effective (post-boost-model) ride path for disclosure

Samples the stored ride at evenly spaced fractions and pushes every sample
through the boost model, so the disclosed path is what the user could
actually have locked.

Clamped samples would form flat plateaus at the cap or floor. Instead the
first pass measures the worst overshoot/undershoot, and the second maps
each clamped sample proportionally into a headroom band (35% of the
cap-to-floor range) just inside the bound:

    overshoot:  display = cap - headroom + (over / max_over)^0.65 * headroom
    undershoot: display = floor + (1 - (under / max_under)^0.65) * headroom

Samples at or after the crash are always 0.
"""

from typing import Dict, List, Sequence

from core.boost_model import BoostConfig, FinalBoostDetails, calculate_final_boost_details
from core.ride_interpolation import interpolate_ride_value
from core.rounding import clamp, round_to

HEADROOM_RATE = 0.35
MIN_HEADROOM = 0.001
SHAPING_EXPONENT = 0.65


def _display_boost(details: FinalBoostDetails, max_overshoot: float, max_undershoot: float) -> float:
    if not details.is_clamped_to_max and not details.is_clamped_to_min:
        return details.final_boost_pct

    cap_range = max(details.effective_max_boost - details.min_boost, 0.0)
    if cap_range <= 0:
        return details.final_boost_pct

    headroom = max(cap_range * HEADROOM_RATE, MIN_HEADROOM)

    if details.is_clamped_to_max:
        overshoot = max(details.raw_boost - details.effective_max_boost, 0.0)
        if max_overshoot <= 0 or overshoot <= 0:
            return details.final_boost_pct
        shaped = clamp(overshoot / max_overshoot, 0.0, 1.0) ** SHAPING_EXPONENT
        display = details.effective_max_boost - headroom + shaped * headroom
    else:
        undershoot = max(details.min_boost - details.raw_boost, 0.0)
        if max_undershoot <= 0 or undershoot <= 0:
            return details.final_boost_pct
        shaped = 1 - clamp(undershoot / max_undershoot, 0.0, 1.0) ** SHAPING_EXPONENT
        display = details.min_boost + shaped * headroom

    return round_to(clamp(display, details.min_boost, details.effective_max_boost), 6)


def build_effective_ride_path(
    checkpoints: Sequence,
    sample_count: int,
    crash_fraction: float,
    ticket_strength: float,
    config: BoostConfig,
    qualifying_selections: int,
    combined_odds: float,
) -> List[Dict[str, float]]:
    """
    Returns:
        [{"time_fraction": t, "boost_value": v}, ...] of length sample_count,
        or [] when there are no checkpoints or fewer than 2 samples.
    """
    if not checkpoints or sample_count < 2:
        return []

    samples = []
    max_overshoot = 0.0
    max_undershoot = 0.0

    for i in range(sample_count):
        t = i / (sample_count - 1)
        crashed = t >= crash_fraction
        ride_value = 0.0 if crashed else interpolate_ride_value(checkpoints, t)
        details = calculate_final_boost_details(
            ride_value, ticket_strength, qualifying_selections, combined_odds, False, config
        )

        if not crashed and details.is_clamped_to_max:
            max_overshoot = max(max_overshoot, details.raw_boost - details.effective_max_boost)
        if not crashed and details.is_clamped_to_min:
            max_undershoot = max(max_undershoot, details.min_boost - details.raw_boost)

        samples.append((t, crashed, details))

    path = []
    for t, crashed, details in samples:
        value = 0.0 if crashed else _display_boost(details, max_overshoot, max_undershoot)
        path.append({"time_fraction": round_to(t, 6), "boost_value": value})
    return path


__all__ = ["build_effective_ride_path"]
