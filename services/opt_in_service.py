"""
Reward Opt-In Service

Opt-in happens after the bet is placed. It qualifies the ticket, derives the
hidden ride parameters from the reward seed, generates the ride exactly once
and binds the bet to the reward.

The GRANTED -> ENTERED transition is conditional on the current status, so a
second concurrent opt-in for the same reward loses and writes nothing.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.reason_codes import ReasonCode
from core.ride_generator import generate_ride
from core.ride_interpolation import utc_now
from core.ride_params import derive_ride_duration_seconds, derive_ride_params
from core.structured_logging import log_info, log_warning
from database import (
    RewardProfileVersion,
    RewardStatus,
    RideCheckpointRecord,
    UserReward,
    append_audit_log,
    get_ride_checkpoints,
    transition_reward_status,
)
from env_config import Config
from services.results import ServiceResult
from services.ticket_evaluation import evaluate_ticket, ineligible_message

logger = logging.getLogger("opt_in_service")

# Status -> (reason code, message) for rewards that can no longer be entered
_CLOSED_STATUSES = {
    RewardStatus.ENTERED.value: (ReasonCode.ALREADY_OPTED_IN, "User has already opted into this reward"),
    RewardStatus.USED.value: (ReasonCode.REWARD_ALREADY_USED, "Reward has already been used"),
    RewardStatus.EXPIRED.value: (ReasonCode.REWARD_EXPIRED, "Reward has expired"),
}


def _eligibility(reason: ReasonCode, total: int, qualifying: int = 0,
                 combined_odds: float = 0.0, ticket_strength: Optional[float] = None) -> Dict[str, Any]:
    return {
        "eligible": reason == ReasonCode.ELIGIBLE,
        "reason_code": reason.value,
        "qualifying_selection_count": qualifying,
        "total_selection_count": total,
        "combined_odds": combined_odds,
        "ticket_strength": ticket_strength,
    }


class OptInService:

    def __init__(self, config=Config):
        self.config = config

    def precheck_eligibility(self, db: Session, reward_id: str, user_id: str,
                             selections: Sequence[Dict[str, Any]]) -> ServiceResult[Dict[str, Any]]:
        """Report whether a ticket would be accepted. Never changes state."""
        total = len(selections)
        reward = db.get(UserReward, reward_id)
        if reward is None or reward.user_id != user_id:
            return ServiceResult.ok(_eligibility(ReasonCode.REWARD_NOT_FOUND, total))
        if reward.status in _CLOSED_STATUSES:
            return ServiceResult.ok(_eligibility(_CLOSED_STATUSES[reward.status][0], total))

        profile = db.get(RewardProfileVersion, reward.profile_version_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, "Associated profile not found")

        evaluation = evaluate_ticket(selections, profile)
        return ServiceResult.ok(_eligibility(
            evaluation.reason_code,
            total,
            evaluation.qualifying_count,
            evaluation.combined_odds,
            evaluation.ticket_strength,
        ))

    def opt_in(
        self,
        db: Session,
        reward_id: str,
        user_id: str,
        bet_id: str,
        selections: Sequence[Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> ServiceResult[Dict[str, Any]]:
        reward = db.get(UserReward, reward_id)
        if reward is None:
            return ServiceResult.fail(ReasonCode.REWARD_NOT_FOUND, f"Reward with ID {reward_id} not found")
        if reward.user_id != user_id:
            return ServiceResult.fail(ReasonCode.REWARD_NOT_FOUND, "Reward not found for this user")
        if reward.status in _CLOSED_STATUSES:
            code, message = _CLOSED_STATUSES[reward.status]
            return ServiceResult.fail(code, message)

        profile = db.get(RewardProfileVersion, reward.profile_version_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, "Associated profile not found")

        evaluation = evaluate_ticket(selections, profile)
        if not evaluation.eligible:
            log_warning(logger, "Opt-in rejected", reward_id=reward_id, bet_id=bet_id,
                        reason_code=evaluation.reason_code.value)
            return ServiceResult.fail(evaluation.reason_code, ineligible_message(evaluation, profile))

        seed = reward.seed
        duration = derive_ride_duration_seconds(
            seed,
            self.config.RIDE_MIN_DURATION_SECONDS,
            self.config.RIDE_MAX_DURATION_SECONDS,
        )
        params = derive_ride_params(seed, duration, self.config.RIDE_MIN_CRASH_SECONDS)

        now = now or utc_now()
        snapshot = {
            "selections": evaluation.selections,
            "qualifying_selections": evaluation.qualifying,
            "disqualified_selections": evaluation.disqualified,
            "combined_odds": evaluation.combined_odds,
            "ticket_strength": evaluation.ticket_strength,
            "min_selection_odds": profile.min_selection_odds,
            "min_selections": profile.min_selections,
            "min_combined_odds": profile.min_combined_odds,
        }

        won = transition_reward_status(
            db,
            reward_id,
            RewardStatus.GRANTED,
            RewardStatus.ENTERED,
            start_time=now,
            end_time=now + timedelta(seconds=duration),
            bet_id=bet_id,
            ticket_snapshot=json.dumps(snapshot),
            checkpoint_count=params.checkpoint_count,
            volatility=params.volatility,
            crash_fraction=params.crash_fraction,
            duration_seconds=duration,
            opted_in_at=now,
        )
        if not won:
            log_warning(logger, "Opt-in lost status race", reward_id=reward_id, bet_id=bet_id)
            return ServiceResult.fail(ReasonCode.ALREADY_OPTED_IN, "User has already opted into this reward")

        ride = generate_ride(
            seed,
            checkpoint_count=params.checkpoint_count,
            volatility=params.volatility,
            min_boost_pct=profile.min_boost_pct,
            max_boost_pct=profile.max_boost_pct,
            ticket_strength=evaluation.ticket_strength,
            duration_seconds=duration,
            crash_fraction=params.crash_fraction,
            min_peak_delay_seconds=self.config.RIDE_MIN_PEAK_DELAY_SECONDS,
        )
        db.add_all([
            RideCheckpointRecord(
                reward_id=reward_id,
                checkpoint_index=cp.index,
                time_fraction=cp.time_fraction,
                boost_value=cp.boost_value,
            )
            for cp in ride.checkpoints
        ])
        db.flush()
        db.refresh(reward)

        append_audit_log(db, "user_reward", reward_id, "OPT_IN", {
            "user_id": user_id,
            "bet_id": bet_id,
            "opted_in_at": now.isoformat(),
            "checkpoint_count": len(ride.checkpoints),
            "volatility": params.volatility,
            "crash_fraction": params.crash_fraction,
            "seed": seed,
            "duration_seconds": duration,
            "combined_odds": evaluation.combined_odds,
            "ticket_strength": evaluation.ticket_strength,
            "applied_passes": ride.applied_passes,
        })
        log_info(logger, "Ride started", reward_id=reward_id, bet_id=bet_id,
                 checkpoint_count=len(ride.checkpoints), ticket_strength=evaluation.ticket_strength)

        return ServiceResult.ok({"reward": reward, "ride_started": True})

    def get_ride_checkpoints(self, db: Session, reward_id: str) -> ServiceResult[List[RideCheckpointRecord]]:
        return ServiceResult.ok(get_ride_checkpoints(db, reward_id))


opt_in_service = OptInService()
