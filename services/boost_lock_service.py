"""
Boost Lock Service

Freezes the boost for a bet at the current instant and stores an immutable
lock with a full snapshot (profile thresholds, ride parameters, boost model
and the disclosed effective ride path).

Idempotent per bet id: a repeat lock returns the stored lock unchanged.
Concurrent locks are settled by the ENTERED -> USED transition and the
unique bet_id constraint; the loser gets the winner's lock back.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.boost_model import (
    BoostConfig,
    calculate_final_boost,
    calculate_final_boost_details,
    compute_max_eligible_boost_pct,
    format_boost_percentage,
)
from core.reason_codes import ReasonCode
from core.ride_interpolation import get_max_ride_value, interpolate_ride_value
from core.ride_path import build_effective_ride_path
from core.rounding import round_to
from core.structured_logging import log_info, log_warning
from database import (
    BetBoostLock,
    RewardProfileVersion,
    RewardStatus,
    UserReward,
    append_audit_log,
    get_ride_checkpoints,
    transition_reward_status,
)
from env_config import Config
from services.results import ServiceResult
from services.ride_state import ride_window
from services.ticket_evaluation import evaluate_ticket, ineligible_message

logger = logging.getLogger("boost_lock_service")


def lock_response(lock: BetBoostLock) -> Dict[str, Any]:
    snapshot = lock.snapshot_data
    duration = snapshot.get("ride_duration_seconds", 0.0)
    return {
        "lock_id": lock.id,
        "bet_id": lock.bet_id,
        "reward_id": lock.reward_id,
        "locked_boost_pct": lock.locked_boost_pct,
        "locked_boost_display": format_boost_percentage(lock.locked_boost_pct),
        "qualifying_selections": lock.qualifying_selections,
        "qualifying_odds": lock.qualifying_odds,
        "ticket_strength": lock.ticket_strength,
        "locked_at": lock.locked_at.isoformat() if lock.locked_at else None,
        "theoretical_max_boost_pct": snapshot.get("max_possible_boost_pct"),
        "ride_end_at_offset_seconds": round_to(duration, 3),
        "ride_crash_at_offset_seconds": round_to(duration * snapshot.get("crash_fraction", 0.0), 3),
        "ride_path": snapshot.get("ride_path", []),
    }


class BoostLockService:

    def __init__(self, config=Config):
        self.config = config

    def _find_lock(self, db: Session, bet_id: str) -> Optional[BetBoostLock]:
        return db.query(BetBoostLock).filter(BetBoostLock.bet_id == bet_id).first()

    def get_lock(self, db: Session, bet_id: str) -> ServiceResult[Optional[BetBoostLock]]:
        return ServiceResult.ok(self._find_lock(db, bet_id))

    def lock_boost(self, db: Session, user_id: str, reward_id: str, bet_id: str,
                   now: Optional[datetime] = None) -> ServiceResult[Dict[str, Any]]:
        existing = self._find_lock(db, bet_id)
        if existing is not None:
            return ServiceResult.ok(lock_response(existing))

        reward = db.get(UserReward, reward_id)
        if reward is None:
            return ServiceResult.fail(ReasonCode.REWARD_NOT_FOUND, f"Reward with ID {reward_id} not found")
        if reward.user_id != user_id:
            return ServiceResult.fail(ReasonCode.REWARD_NOT_FOUND, "Reward not found for this user")
        if reward.status == RewardStatus.EXPIRED.value:
            return ServiceResult.fail(ReasonCode.REWARD_EXPIRED, "Reward has expired")
        if reward.status == RewardStatus.USED.value:
            return ServiceResult.fail(ReasonCode.REWARD_ALREADY_USED, "Reward has already been used")
        if reward.status != RewardStatus.ENTERED.value:
            return ServiceResult.fail(ReasonCode.NOT_OPTED_IN, "User has not opted into this reward")

        ticket = reward.ticket
        if not reward.bet_id or reward.bet_id != bet_id or ticket is None:
            return ServiceResult.fail(ReasonCode.NOT_OPTED_IN, "Ride not started for this bet")

        window = ride_window(reward, now, self.config)
        if window.crashed:
            log_warning(logger, "Lock rejected: ride crashed", reward_id=reward_id, bet_id=bet_id)
            return ServiceResult.fail(ReasonCode.RIDE_CRASHED, "Ride has crashed - boost is zero", window.offsets())
        if window.ended:
            log_warning(logger, "Lock rejected: ride ended", reward_id=reward_id, bet_id=bet_id)
            return ServiceResult.fail(ReasonCode.RIDE_ENDED, "Ride has ended - boost is zero", window.offsets())

        profile = db.get(RewardProfileVersion, reward.profile_version_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, "Associated profile not found")

        evaluation = evaluate_ticket(ticket.get("selections") or [], profile)
        if not evaluation.eligible:
            return ServiceResult.fail(evaluation.reason_code, ineligible_message(evaluation, profile))

        boost_config = BoostConfig.from_profile(profile)
        checkpoints = get_ride_checkpoints(db, reward_id)
        ride_value = interpolate_ride_value(checkpoints, window.elapsed_fraction)
        max_ride_value = get_max_ride_value(checkpoints, window.crash_fraction)

        details = calculate_final_boost_details(
            ride_value,
            evaluation.ticket_strength,
            evaluation.qualifying_count,
            evaluation.combined_odds,
            False,
            boost_config,
        )
        max_possible = calculate_final_boost(
            max_ride_value,
            evaluation.ticket_strength,
            evaluation.qualifying_count,
            evaluation.combined_odds,
            False,
            boost_config,
        )
        max_eligible = compute_max_eligible_boost_pct(
            evaluation.qualifying_count, evaluation.combined_odds, boost_config
        )
        ride_path = build_effective_ride_path(
            checkpoints,
            self.config.RIDE_PATH_SAMPLE_COUNT,
            window.crash_fraction,
            evaluation.ticket_strength,
            boost_config,
            evaluation.qualifying_count,
            evaluation.combined_odds,
        )

        snapshot = {
            "selections": evaluation.qualifying,
            "disqualified_selections": evaluation.disqualified,
            "profile_id": profile.id,
            "min_selections": profile.min_selections,
            "min_combined_odds": profile.min_combined_odds,
            "min_selection_odds": profile.min_selection_odds,
            **boost_config.to_dict(),
            "ride_duration_seconds": window.duration_seconds,
            "checkpoint_count": reward.checkpoint_count,
            "volatility": reward.volatility,
            "seed": reward.seed,
            "crash_fraction": window.crash_fraction,
            "total_selection_count": evaluation.total_count,
            "qualifying_selection_count": evaluation.qualifying_count,
            "combined_odds": evaluation.combined_odds,
            "ticket_strength": evaluation.ticket_strength,
            "elapsed_fraction": window.elapsed_fraction,
            "ride_value": ride_value,
            "max_ride_value": max_ride_value,
            "max_eligible_boost_pct": max_eligible,
            "max_possible_boost_pct": max_possible,
            "boost_model": details.boost_model.to_dict(),
            "ride_path": ride_path,
        }

        if not transition_reward_status(db, reward_id, RewardStatus.ENTERED, RewardStatus.USED):
            winner = self._find_lock(db, bet_id)
            if winner is not None:
                return ServiceResult.ok(lock_response(winner))
            return ServiceResult.fail(ReasonCode.REWARD_ALREADY_USED, "Reward has already been used")

        lock = BetBoostLock(
            bet_id=bet_id,
            reward_id=reward_id,
            locked_boost_pct=details.final_boost_pct,
            qualifying_selections=evaluation.qualifying_count,
            qualifying_odds=evaluation.combined_odds,
            ticket_strength=evaluation.ticket_strength,
            snapshot=json.dumps(snapshot),
        )
        if now is not None:
            lock.locked_at = now
        db.add(lock)
        try:
            db.flush()
        except IntegrityError:
            # Another reward already locked this bet id; undo our USED transition
            db.rollback()
            winner = self._find_lock(db, bet_id)
            if winner is None:
                raise
            return ServiceResult.ok(lock_response(winner))
        db.refresh(reward)

        append_audit_log(db, "bet_boost_lock", lock.id, "LOCK", {
            "bet_id": bet_id,
            "reward_id": reward_id,
            "user_id": user_id,
            "locked_boost_pct": lock.locked_boost_pct,
            "qualifying_selections": evaluation.qualifying_count,
            "combined_odds": evaluation.combined_odds,
            "ticket_strength": evaluation.ticket_strength,
            "elapsed_fraction": window.elapsed_fraction,
            "max_ride_value": max_ride_value,
            "max_eligible_boost_pct": max_eligible,
            "max_possible_boost_pct": max_possible,
            "seed": reward.seed,
            "crash_fraction": window.crash_fraction,
        })
        log_info(logger, "Boost locked", reward_id=reward_id, bet_id=bet_id,
                 locked_boost_pct=lock.locked_boost_pct)

        return ServiceResult.ok(lock_response(lock))


boost_lock_service = BoostLockService()
