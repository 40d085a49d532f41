"""
BOOST_MODEL.PY - Ride value -> final boost percentage
=====================================================

Two stages:

1. Eligibility window. Operators may configure max-boost thresholds
   (selection count and/or combined odds). How close a ticket gets to those
   thresholds sets an eligibility factor in [0, 1], which scales both the
   effective ceiling and, more gently, the effective floor.

       both thresholds:  factor = min(1, (sel_ratio^1.2)^0.75 * (odds_ratio^1.2)^0.25)
       one threshold:    factor = ratio^1.2
       none:             factor = 1, window = configured [min, max]

       effective_max = max(min, min + (max - min) * factor)
       effective_min = clamp(min + (effective_max - min) * factor * 0.35, min, effective_max)

2. Strength transform. Ticket strength first amplifies the ride's swing
   around the window midpoint, then compresses magnitude:

       adjusted = mid + (ride_value - mid) * (0.5 + 0.8 * strength)
       raw      = adjusted * (0.4 + 0.6 * strength)
       final    = clamp(raw, effective_min, effective_max)

An ended ride is always 0.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from core.rounding import clamp, round_to

SELECTION_WEIGHT = 0.75
ODDS_WEIGHT = 0.25
MAX_ELIGIBILITY_EXPONENT = 1.2
EFFECTIVE_MIN_FLOOR_RATE = 0.35


@dataclass
class BoostConfig:
    min_boost_pct: float
    max_boost_pct: float
    max_boost_min_selections: Optional[int] = None
    max_boost_min_combined_odds: Optional[float] = None

    @classmethod
    def from_profile(cls, profile) -> "BoostConfig":
        return cls(
            min_boost_pct=profile.min_boost_pct,
            max_boost_pct=profile.max_boost_pct,
            max_boost_min_selections=profile.max_boost_min_selections,
            max_boost_min_combined_odds=profile.max_boost_min_combined_odds,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BoostModelDetails:
    selection_ratio: Optional[float]
    odds_ratio: Optional[float]
    eligibility_factor: float
    effective_min_boost: float
    effective_max_boost: float
    selection_weight: float = SELECTION_WEIGHT
    odds_weight: float = ODDS_WEIGHT
    max_eligibility_exponent: float = MAX_ELIGIBILITY_EXPONENT
    effective_min_floor_rate: float = EFFECTIVE_MIN_FLOOR_RATE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FinalBoostDetails:
    final_boost_pct: float
    raw_boost: float
    effective_max_boost: float
    min_boost: float
    is_clamped_to_max: bool
    is_clamped_to_min: bool
    boost_model: BoostModelDetails

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _threshold(value) -> Optional[float]:
    if value is None or value <= 0:
        return None
    return float(value)


def _ratio(actual: float, target: Optional[float]) -> Optional[float]:
    if target is None:
        return None
    return clamp(actual / target, 0.0, 1.0)


def compute_boost_model_details(
    qualifying_selections: int,
    combined_odds: float,
    config: BoostConfig,
) -> BoostModelDetails:
    selection_target = _threshold(config.max_boost_min_selections)
    odds_target = _threshold(config.max_boost_min_combined_odds)

    selection_ratio = _ratio(qualifying_selections, selection_target)
    odds_ratio = _ratio(combined_odds, odds_target)

    if selection_ratio is None and odds_ratio is None:
        return BoostModelDetails(
            selection_ratio=None,
            odds_ratio=None,
            eligibility_factor=1.0,
            effective_min_boost=round_to(config.min_boost_pct, 6),
            effective_max_boost=round_to(config.max_boost_pct, 6),
        )

    if selection_ratio is not None and odds_ratio is not None:
        selection_component = selection_ratio ** MAX_ELIGIBILITY_EXPONENT
        odds_component = odds_ratio ** MAX_ELIGIBILITY_EXPONENT
        factor = min(1.0, (selection_component ** SELECTION_WEIGHT) * (odds_component ** ODDS_WEIGHT))
    elif selection_ratio is not None:
        factor = selection_ratio ** MAX_ELIGIBILITY_EXPONENT
    else:
        factor = odds_ratio ** MAX_ELIGIBILITY_EXPONENT

    min_boost = config.min_boost_pct
    span = config.max_boost_pct - min_boost

    effective_max = round_to(max(min_boost, min_boost + span * factor), 6)
    effective_min = min_boost + (effective_max - min_boost) * (factor * EFFECTIVE_MIN_FLOOR_RATE)
    effective_min = round_to(clamp(effective_min, min_boost, effective_max), 6)

    return BoostModelDetails(
        selection_ratio=None if selection_ratio is None else round_to(selection_ratio, 6),
        odds_ratio=None if odds_ratio is None else round_to(odds_ratio, 6),
        eligibility_factor=round_to(factor, 6),
        effective_min_boost=effective_min,
        effective_max_boost=effective_max,
    )


def compute_max_eligible_boost_pct(qualifying_selections: int, combined_odds: float, config: BoostConfig) -> float:
    return compute_boost_model_details(qualifying_selections, combined_odds, config).effective_max_boost


def calculate_final_boost_details(
    ride_value: float,
    ticket_strength: float,
    qualifying_selections: int,
    combined_odds: float,
    has_ride_ended: bool,
    config: BoostConfig,
) -> FinalBoostDetails:
    model = compute_boost_model_details(qualifying_selections, combined_odds, config)
    effective_min = model.effective_min_boost
    effective_max = model.effective_max_boost

    if has_ride_ended:
        return FinalBoostDetails(
            final_boost_pct=0.0,
            raw_boost=0.0,
            effective_max_boost=effective_max,
            min_boost=effective_min,
            is_clamped_to_max=False,
            is_clamped_to_min=False,
            boost_model=model,
        )

    midpoint = (effective_min + effective_max) / 2
    volatility_multiplier = 0.5 + 0.8 * ticket_strength
    adjusted = midpoint + (ride_value - midpoint) * volatility_multiplier
    strength_multiplier = 0.4 + 0.6 * ticket_strength
    raw_boost = adjusted * strength_multiplier

    return FinalBoostDetails(
        final_boost_pct=round_to(clamp(raw_boost, effective_min, effective_max), 6),
        raw_boost=raw_boost,
        effective_max_boost=effective_max,
        min_boost=effective_min,
        is_clamped_to_max=raw_boost > effective_max,
        is_clamped_to_min=raw_boost < effective_min,
        boost_model=model,
    )


def calculate_final_boost(
    ride_value: float,
    ticket_strength: float,
    qualifying_selections: int,
    combined_odds: float,
    has_ride_ended: bool,
    config: BoostConfig,
) -> float:
    return calculate_final_boost_details(
        ride_value, ticket_strength, qualifying_selections, combined_odds, has_ride_ended, config
    ).final_boost_pct


def calculate_bonus_amount(winnings: float, boost_pct: float) -> float:
    """Bonus paid on a winning bet: winnings * boost, 4 dp."""
    if winnings <= 0 or boost_pct <= 0:
        return 0.0
    return round_to(winnings * boost_pct, 4)


def format_boost_percentage(boost_pct: float) -> str:
    """0.25 -> "25.0%"."""
    return f"{boost_pct * 100:.1f}%"


__all__ = [
    "BoostConfig",
    "BoostModelDetails",
    "FinalBoostDetails",
    "compute_boost_model_details",
    "compute_max_eligible_boost_pct",
    "calculate_final_boost_details",
    "calculate_final_boost",
    "calculate_bonus_amount",
    "format_boost_percentage",
]
