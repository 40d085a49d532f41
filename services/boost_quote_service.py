"""
Boost Quote Service

Reads the current boost for an entered reward's bound bet. A quote never
changes state, and every reason a quote cannot be given is reported as an
ineligible quote rather than an error. Time remaining is not disclosed while
the ride is running; end and crash offsets (and the effective ride path)
only appear once the ride has crashed or ended.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from core.boost_model import BoostConfig, calculate_final_boost
from core.reason_codes import ReasonCode
from core.ride_interpolation import get_max_ride_value, interpolate_ride_value
from core.ride_path import build_effective_ride_path
from database import RewardProfileVersion, RewardStatus, UserReward, get_ride_checkpoints
from env_config import Config
from services.results import ServiceResult
from services.ride_state import ride_window
from services.ticket_evaluation import evaluate_ticket

logger = logging.getLogger("boost_quote_service")


def _ineligible(reason: ReasonCode, total: int = 0, qualifying: int = 0, combined_odds: float = 0.0,
                ticket_strength: Optional[float] = None) -> Dict[str, Any]:
    return {
        "eligible": False,
        "reason_code": reason.value,
        "qualifying_selection_count": qualifying,
        "total_selection_count": total,
        "combined_odds": combined_odds,
        "current_boost_pct": None,
        "theoretical_max_boost_pct": None,
        "ticket_strength": ticket_strength,
        "ride_end_at_offset_seconds": None,
        "ride_crash_at_offset_seconds": None,
    }


class BoostQuoteService:

    def __init__(self, config=Config):
        self.config = config

    def get_quote(self, db: Session, user_id: str, reward_id: str, bet_id: str,
                  now: Optional[datetime] = None) -> ServiceResult[Dict[str, Any]]:
        reward = db.get(UserReward, reward_id)
        if reward is None or reward.user_id != user_id:
            return ServiceResult.ok(_ineligible(ReasonCode.REWARD_NOT_FOUND))
        if reward.status == RewardStatus.EXPIRED.value:
            return ServiceResult.ok(_ineligible(ReasonCode.REWARD_EXPIRED))
        if reward.status == RewardStatus.USED.value:
            return ServiceResult.ok(_ineligible(ReasonCode.REWARD_ALREADY_USED))
        if reward.status != RewardStatus.ENTERED.value:
            return ServiceResult.ok(_ineligible(ReasonCode.NOT_OPTED_IN))

        profile = db.get(RewardProfileVersion, reward.profile_version_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, "Associated profile not found")

        ticket = reward.ticket
        if not reward.bet_id or reward.bet_id != bet_id or ticket is None:
            return ServiceResult.ok(_ineligible(ReasonCode.NOT_OPTED_IN))

        evaluation = evaluate_ticket(ticket.get("selections") or [], profile)
        if not evaluation.eligible:
            return ServiceResult.ok(_ineligible(
                evaluation.reason_code,
                evaluation.total_count,
                evaluation.qualifying_count,
                evaluation.combined_odds,
                evaluation.ticket_strength,
            ))

        window = ride_window(reward, now, self.config)
        checkpoints = get_ride_checkpoints(db, reward_id)
        boost_config = BoostConfig.from_profile(profile)

        def boost_at(ride_value: float) -> float:
            return calculate_final_boost(
                ride_value,
                evaluation.ticket_strength,
                evaluation.qualifying_count,
                evaluation.combined_odds,
                False,
                boost_config,
            )

        current_boost = boost_at(interpolate_ride_value(checkpoints, window.elapsed_fraction))
        theoretical_max = boost_at(get_max_ride_value(checkpoints, window.crash_fraction))

        quote = {
            "eligible": True,
            "reason_code": ReasonCode.ELIGIBLE.value,
            "qualifying_selection_count": evaluation.qualifying_count,
            "total_selection_count": evaluation.total_count,
            "combined_odds": evaluation.combined_odds,
            "current_boost_pct": current_boost,
            "theoretical_max_boost_pct": theoretical_max,
            "ticket_strength": evaluation.ticket_strength,
            "ride_end_at_offset_seconds": None,
            "ride_crash_at_offset_seconds": None,
        }

        if window.crashed or window.ended:
            quote.update(window.offsets())
            quote.update({
                "eligible": False,
                "reason_code": (ReasonCode.RIDE_CRASHED if window.crashed else ReasonCode.RIDE_ENDED).value,
                "current_boost_pct": 0.0,
                "ride_path": build_effective_ride_path(
                    checkpoints,
                    self.config.RIDE_PATH_SAMPLE_COUNT,
                    window.crash_fraction,
                    evaluation.ticket_strength,
                    boost_config,
                    evaluation.qualifying_count,
                    evaluation.combined_odds,
                ),
            })
            logger.debug("Quote after ride close: reward=%s reason=%s", reward_id, quote["reason_code"])

        return ServiceResult.ok(quote)


boost_quote_service = BoostQuoteService()
