"""
Reward Profile Service

Operator CRUD for reward profile versions. Cross-field rules that a
single-field validator cannot see are enforced here:
- min_boost_pct <= max_boost_pct
- max_boost_min_selections >= min_selections (when set)
- max_boost_min_combined_odds >= min_combined_odds (when set)
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.reason_codes import ReasonCode
from core.structured_logging import log_info
from database import RewardProfileVersion, append_audit_log
from services.results import ServiceResult

logger = logging.getLogger("reward_profile_service")

UPDATABLE_FIELDS = (
    "name",
    "description",
    "min_selections",
    "min_combined_odds",
    "min_selection_odds",
    "min_boost_pct",
    "max_boost_pct",
    "max_boost_min_selections",
    "max_boost_min_combined_odds",
    "ride_duration_seconds",
    "is_active",
)


def _configuration_error(values: Dict[str, Any]) -> Optional[str]:
    if values["min_boost_pct"] > values["max_boost_pct"]:
        return "min_boost_pct must be less than or equal to max_boost_pct"

    max_sel = values.get("max_boost_min_selections")
    if max_sel is not None and max_sel < values["min_selections"]:
        return "max_boost_min_selections must be greater than or equal to min_selections"

    max_odds = values.get("max_boost_min_combined_odds")
    if max_odds is not None and max_odds < values["min_combined_odds"]:
        return "max_boost_min_combined_odds must be greater than or equal to min_combined_odds"

    return None


class RewardProfileService:

    def create_profile(self, db: Session, values: Dict[str, Any]) -> ServiceResult[RewardProfileVersion]:
        problem = _configuration_error(values)
        if problem:
            return ServiceResult.fail(ReasonCode.INVALID_CONFIGURATION, problem)

        profile = RewardProfileVersion(**{k: v for k, v in values.items() if k in UPDATABLE_FIELDS})
        db.add(profile)
        db.flush()

        append_audit_log(db, "reward_profile", profile.id, "CREATE", {"input": values})
        log_info(logger, "Reward profile created", profile_id=profile.id, profile_name=profile.name)
        return ServiceResult.ok(profile)

    def get_profile(self, db: Session, profile_id: str) -> ServiceResult[RewardProfileVersion]:
        profile = db.get(RewardProfileVersion, profile_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, f"Profile with ID {profile_id} not found")
        return ServiceResult.ok(profile)

    def list_profiles(self, db: Session, active_only: bool = False) -> ServiceResult[List[RewardProfileVersion]]:
        query = db.query(RewardProfileVersion)
        if active_only:
            query = query.filter(RewardProfileVersion.is_active.is_(True))
        return ServiceResult.ok(query.order_by(RewardProfileVersion.created_at).all())

    def update_profile(self, db: Session, profile_id: str, changes: Dict[str, Any]) -> ServiceResult[RewardProfileVersion]:
        profile = db.get(RewardProfileVersion, profile_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, f"Profile with ID {profile_id} not found")

        merged = profile.to_dict()
        merged.update({k: v for k, v in changes.items() if k in UPDATABLE_FIELDS})
        problem = _configuration_error(merged)
        if problem:
            return ServiceResult.fail(ReasonCode.INVALID_CONFIGURATION, problem)

        for key, value in changes.items():
            if key in UPDATABLE_FIELDS:
                setattr(profile, key, value)
        db.flush()

        append_audit_log(db, "reward_profile", profile.id, "UPDATE", {"changes": changes})
        log_info(logger, "Reward profile updated", profile_id=profile.id, fields=sorted(changes))
        return ServiceResult.ok(profile)

    def deactivate_profile(self, db: Session, profile_id: str) -> ServiceResult[RewardProfileVersion]:
        """Soft delete: granted rewards keep pointing at the version they were granted with."""
        profile = db.get(RewardProfileVersion, profile_id)
        if profile is None:
            return ServiceResult.fail(ReasonCode.PROFILE_NOT_FOUND, f"Profile with ID {profile_id} not found")

        profile.is_active = False
        db.flush()

        append_audit_log(db, "reward_profile", profile.id, "DEACTIVATE", {"profile": profile.to_dict()})
        log_info(logger, "Reward profile deactivated", profile_id=profile.id)
        return ServiceResult.ok(profile)


reward_profile_service = RewardProfileService()
