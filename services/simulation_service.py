"""
Simulation Service (admin)

Samples a ride curve for a seed, profile and optional ticket so operators
can tune profiles. Nothing is persisted.

Without a profile the window defaults to 1%..100% with entry thresholds of
3 selections at 1.2, combined 3.0. Without a ticket the strength is 0.5 and
the boost model is fed the max-boost thresholds (or the entry thresholds),
so the curve shows what a ticket at the ceiling would see.
"""

import logging
import uuid
from typing import Any, Dict, Optional, Sequence

from sqlalchemy.orm import Session

from core.boost_model import BoostConfig, calculate_final_boost
from core.log_sanitizer import seed_fingerprint
from core.qualification import calculate_combined_odds, filter_qualifying_selections, round_odds
from core.reason_codes import ReasonCode
from core.ride_generator import generate_ride
from core.ride_interpolation import interpolate_ride_value
from core.ride_params import derive_ride_duration_seconds, derive_ride_params
from core.rounding import round_to
from core.ticket_strength import compute_linear_strength, compute_ticket_strength
from database import RewardProfileVersion
from env_config import Config
from services.results import ServiceResult

logger = logging.getLogger("simulation_service")

DEFAULT_MIN_BOOST_PCT = 0.01
DEFAULT_MAX_BOOST_PCT = 1.0
DEFAULT_MIN_SELECTIONS = 3
DEFAULT_MIN_SELECTION_ODDS = 1.2
DEFAULT_MIN_COMBINED_ODDS = 3.0
DEFAULT_TICKET_STRENGTH = 0.5
DEFAULT_SAMPLE_POINTS = 100


class SimulationService:

    def __init__(self, config=Config):
        self.config = config

    def simulate_ride(
        self,
        db: Session,
        seed: Optional[str] = None,
        profile_id: Optional[str] = None,
        min_boost_pct: Optional[float] = None,
        max_boost_pct: Optional[float] = None,
        sample_points: Optional[int] = None,
        selections: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> ServiceResult[Dict[str, Any]]:
        seed = seed or f"sim-{uuid.uuid4()}"

        boost_config = BoostConfig(min_boost_pct=DEFAULT_MIN_BOOST_PCT, max_boost_pct=DEFAULT_MAX_BOOST_PCT)
        min_selections = DEFAULT_MIN_SELECTIONS
        min_selection_odds = DEFAULT_MIN_SELECTION_ODDS
        min_combined_odds = DEFAULT_MIN_COMBINED_ODDS

        if profile_id:
            profile = db.get(RewardProfileVersion, profile_id)
            if profile is None:
                return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, f"Profile with ID {profile_id} not found")
            boost_config = BoostConfig.from_profile(profile)
            min_selections = profile.min_selections
            min_selection_odds = profile.min_selection_odds
            min_combined_odds = profile.min_combined_odds

        if min_boost_pct is not None:
            boost_config.min_boost_pct = min_boost_pct
        if max_boost_pct is not None:
            boost_config.max_boost_pct = max_boost_pct
        if boost_config.min_boost_pct > boost_config.max_boost_pct:
            return ServiceResult.fail(
                ReasonCode.INVALID_CONFIGURATION,
                "min_boost_pct must be less than or equal to max_boost_pct",
            )

        ticket_strength = DEFAULT_TICKET_STRENGTH
        qualifying_count = boost_config.max_boost_min_selections or min_selections
        combined_odds = boost_config.max_boost_min_combined_odds or min_combined_odds
        ticket_analysis = None

        if selections:
            qualifying = filter_qualifying_selections(selections, min_selection_odds)["qualifying"]
            qualifying_count = len(qualifying)
            combined_odds = calculate_combined_odds(qualifying)
            ticket_strength = compute_ticket_strength(qualifying_count, combined_odds, min_selections)
            ticket_analysis = {
                "qualifying_selections": qualifying_count,
                "combined_odds": round_odds(combined_odds),
                "ticket_strength": ticket_strength,
                "linear_strength": compute_linear_strength(qualifying_count, combined_odds, min_selections),
            }

        duration = derive_ride_duration_seconds(
            seed,
            self.config.RIDE_MIN_DURATION_SECONDS,
            self.config.RIDE_MAX_DURATION_SECONDS,
        )
        params = derive_ride_params(seed, duration, self.config.RIDE_MIN_CRASH_SECONDS)
        ride = generate_ride(
            seed,
            checkpoint_count=params.checkpoint_count,
            volatility=params.volatility,
            min_boost_pct=boost_config.min_boost_pct,
            max_boost_pct=boost_config.max_boost_pct,
            ticket_strength=ticket_strength,
            duration_seconds=duration,
            crash_fraction=params.crash_fraction,
            min_peak_delay_seconds=self.config.RIDE_MIN_PEAK_DELAY_SECONDS,
        )

        samples = max(1, sample_points or DEFAULT_SAMPLE_POINTS)
        curve = []
        for i in range(samples + 1):
            t = i / samples
            crashed = t >= params.crash_fraction
            ride_value = 0.0 if crashed else interpolate_ride_value(ride.checkpoints, t)
            boost = 0.0
            if not crashed:
                boost = calculate_final_boost(
                    ride_value, ticket_strength, qualifying_count, combined_odds, False, boost_config
                )
            curve.append({
                "time_pct": round_to(t, 4),
                "base_ride_value": round_to(ride_value, 4),
                "final_boost_pct": round_to(boost, 4),
            })

        logger.debug("Simulated ride %s checkpoints=%d samples=%d", seed_fingerprint(seed), len(ride.checkpoints), samples)

        return ServiceResult.ok({
            "seed": seed,
            "config": {
                "duration_seconds": duration,
                "checkpoint_count": params.checkpoint_count,
                "volatility": params.volatility,
                "crash_fraction": params.crash_fraction,
                **boost_config.to_dict(),
            },
            "ticket_analysis": ticket_analysis,
            "checkpoints": [cp.to_dict() for cp in ride.checkpoints],
            "applied_passes": ride.applied_passes,
            "curve": curve,
        })


simulation_service = SimulationService()
