"""
Reward Entitlement Service

Grants rewards and tracks their lifecycle:

    GRANTED --opt-in--> ENTERED --lock--> USED
                           |
                           +--window closes--> EXPIRED

The seed is derived from the reward's own id, so it is fixed before the row
is written. The ride duration comes from the seed, not from the caller:
a requested duration is only recorded in the audit trail.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from core.log_sanitizer import seed_fingerprint
from core.reason_codes import ReasonCode
from core.ride_interpolation import utc_now
from core.ride_params import derive_ride_duration_seconds, generate_seed
from core.structured_logging import log_info, log_warning
from database import (
    RewardProfileVersion,
    RewardStatus,
    UserReward,
    new_id,
    append_audit_log,
    mark_expired_rewards,
)
from env_config import Config
from services.results import ServiceResult

logger = logging.getLogger("entitlement_service")


class EntitlementService:
    """
    Usage:
        result = entitlement_service.grant_reward(db, user_id="u-1", profile_version_id=profile.id)
        if result.success:
            reward = result.data
    """

    def __init__(self, config=Config):
        self.config = config

    def grant_reward(
        self,
        db: Session,
        user_id: str,
        profile_version_id: str,
        duration_seconds: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[UserReward]:
        profile = db.get(RewardProfileVersion, profile_version_id)
        if profile is None:
            return ServiceResult.fail(
                ReasonCode.PROFILE_NOT_FOUND,
                f"Profile with ID {profile_version_id} not found",
            )
        if not profile.is_active:
            log_warning(logger, "Grant rejected: inactive profile",
                        user_id=user_id, profile_id=profile_version_id)
            return ServiceResult.fail(ReasonCode.PROFILE_INACTIVE, "Cannot grant reward with inactive profile")

        now = now or utc_now()
        reward_id = new_id()
        seed = generate_seed(reward_id, user_id, profile_version_id)
        duration = derive_ride_duration_seconds(
            seed,
            self.config.RIDE_MIN_DURATION_SECONDS,
            self.config.RIDE_MAX_DURATION_SECONDS,
        )

        reward = UserReward(
            id=reward_id,
            user_id=user_id,
            profile_version_id=profile_version_id,
            status=RewardStatus.GRANTED.value,
            start_time=now,
            end_time=now + timedelta(seconds=duration),
            seed=seed,
        )
        db.add(reward)
        db.flush()

        append_audit_log(db, "user_reward", reward.id, "GRANT", {
            "user_id": user_id,
            "profile_version_id": profile_version_id,
            "start_time": reward.start_time.isoformat(),
            "end_time": reward.end_time.isoformat(),
            "duration_seconds": duration,
            "requested_duration_seconds": duration_seconds,
            "min_duration_seconds": self.config.RIDE_MIN_DURATION_SECONDS,
            "max_duration_seconds": self.config.RIDE_MAX_DURATION_SECONDS,
            "seed": seed,
        })
        log_info(logger, "Reward granted", reward_id=reward.id, user_id=user_id,
                 profile_id=profile_version_id, duration_seconds=duration, seed_fp=seed_fingerprint(seed))
        return ServiceResult.ok(reward)

    def get_reward(self, db: Session, reward_id: str) -> ServiceResult[UserReward]:
        reward = db.get(UserReward, reward_id)
        if reward is None:
            return ServiceResult.fail(ReasonCode.REWARD_NOT_FOUND, f"Reward with ID {reward_id} not found")
        return ServiceResult.ok(reward)

    def list_rewards_for_user(self, db: Session, user_id: str) -> ServiceResult[List[UserReward]]:
        rewards = (
            db.query(UserReward)
            .filter(UserReward.user_id == user_id)
            .order_by(UserReward.created_at.desc())
            .all()
        )
        return ServiceResult.ok(rewards)

    def get_active_reward_for_user(self, db: Session, user_id: str,
                                   now: Optional[datetime] = None) -> ServiceResult[Optional[UserReward]]:
        """Newest reward that is GRANTED, or ENTERED with its window still open."""
        now = now or utc_now()
        reward = (
            db.query(UserReward)
            .filter(
                UserReward.user_id == user_id,
                or_(
                    UserReward.status == RewardStatus.GRANTED.value,
                    and_(UserReward.status == RewardStatus.ENTERED.value, UserReward.end_time > now),
                ),
            )
            .order_by(UserReward.created_at.desc())
            .first()
        )
        return ServiceResult.ok(reward)

    def process_expired_rewards(self, db: Session, now: Optional[datetime] = None) -> ServiceResult[int]:
        count = mark_expired_rewards(db, now)
        if count > 0:
            append_audit_log(db, "system", "batch_expiry", "EXPIRE_REWARDS", {"expired_count": count})
            log_info(logger, "Expired rewards processed", expired_count=count)
        return ServiceResult.ok(count)


entitlement_service = EntitlementService()
