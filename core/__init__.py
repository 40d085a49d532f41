"""
Core module - Deterministic ride engine (pure, no I/O)
"""

from .rounding import round_to, clamp

from .seeded_random import SeededRandom

from .ride_params import (
    RideParams,
    generate_seed,
    derive_ride_duration_seconds,
    derive_crash_fraction,
    derive_ride_params,
)

from .qualification import (
    filter_qualifying_selections,
    calculate_combined_odds,
    meets_min_selection_count,
    meets_combined_odds_threshold,
    round_odds,
)

from .ticket_strength import (
    compute_ticket_strength,
    compute_linear_strength,
)

from .ride_generator import (
    RideCheckpoint,
    GeneratedRide,
    generate_ride,
)

from .ride_interpolation import (
    interpolate_ride_value,
    calculate_elapsed_fraction,
    has_ride_ended,
    get_max_ride_value,
)

from .boost_model import (
    BoostConfig,
    BoostModelDetails,
    FinalBoostDetails,
    compute_boost_model_details,
    compute_max_eligible_boost_pct,
    calculate_final_boost_details,
    calculate_final_boost,
    calculate_bonus_amount,
    format_boost_percentage,
)

from .ride_path import build_effective_ride_path

from .reason_codes import ReasonCode

__all__ = [
    # Rounding
    'round_to',
    'clamp',

    # Randomness and derivation
    'SeededRandom',
    'RideParams',
    'generate_seed',
    'derive_ride_duration_seconds',
    'derive_crash_fraction',
    'derive_ride_params',

    # Qualification
    'filter_qualifying_selections',
    'calculate_combined_odds',
    'meets_min_selection_count',
    'meets_combined_odds_threshold',
    'round_odds',
    'compute_ticket_strength',
    'compute_linear_strength',

    # Ride
    'RideCheckpoint',
    'GeneratedRide',
    'generate_ride',
    'interpolate_ride_value',
    'calculate_elapsed_fraction',
    'has_ride_ended',
    'get_max_ride_value',

    # Boost
    'BoostConfig',
    'BoostModelDetails',
    'FinalBoostDetails',
    'compute_boost_model_details',
    'compute_max_eligible_boost_pct',
    'calculate_final_boost_details',
    'calculate_final_boost',
    'calculate_bonus_amount',
    'format_boost_percentage',
    'build_effective_ride_path',

    # Service vocabulary
    'ReasonCode',
]
