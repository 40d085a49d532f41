"""
REWARDS.PY - Reward Entitlement Router

Endpoints:
    POST /rewards/grant                  - Grant a reward to a user
    POST /rewards/expire                 - Expire ENTERED rewards whose window closed
    GET  /rewards/user/{user_id}         - All rewards for a user
    GET  /rewards/user/{user_id}/active  - The user's active reward, if any
    GET  /rewards/{reward_id}            - One reward
    POST /rewards/{reward_id}/eligibility - Ticket precheck (no state change)
    POST /rewards/{reward_id}/opt-in     - Start the ride for a placed bet
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import verify_api_key
from core.error_responses import service_error_response
from core.structured_logging import bind_log_context
from models.api_models import EligibilityRequest, GrantRewardRequest, OptInRequest
from routers.dependencies import get_session
from services.entitlement_service import entitlement_service
from services.opt_in_service import opt_in_service

router = APIRouter(tags=["rewards"], dependencies=[Depends(verify_api_key)])


@router.post("/rewards/grant", status_code=201)
def grant_reward(body: GrantRewardRequest, db: Session = Depends(get_session)):
    with bind_log_context(user_id=body.user_id):
        result = entitlement_service.grant_reward(
            db,
            user_id=body.user_id,
            profile_version_id=body.profile_version_id,
            duration_seconds=body.duration_seconds,
        )
    if not result.success:
        return service_error_response(result)
    return result.data.to_dict()


@router.post("/rewards/expire")
def expire_rewards(db: Session = Depends(get_session)):
    result = entitlement_service.process_expired_rewards(db)
    return {"expired_count": result.data}


@router.get("/rewards/user/{user_id}")
def list_user_rewards(user_id: str, db: Session = Depends(get_session)):
    result = entitlement_service.list_rewards_for_user(db, user_id)
    rewards = [r.to_dict() for r in result.data]
    return {"rewards": rewards, "count": len(rewards)}


@router.get("/rewards/user/{user_id}/active")
def get_active_reward(user_id: str, db: Session = Depends(get_session)):
    result = entitlement_service.get_active_reward_for_user(db, user_id)
    return {"active_reward": result.data.to_dict() if result.data else None}


@router.get("/rewards/{reward_id}")
def get_reward(reward_id: str, db: Session = Depends(get_session)):
    result = entitlement_service.get_reward(db, reward_id)
    if not result.success:
        return service_error_response(result)
    return result.data.to_dict()


@router.post("/rewards/{reward_id}/eligibility")
def precheck_eligibility(reward_id: str, body: EligibilityRequest, db: Session = Depends(get_session)):
    result = opt_in_service.precheck_eligibility(db, reward_id, body.user_id, body.ticket.to_selections())
    if not result.success:
        return service_error_response(result)
    return result.data


@router.post("/rewards/{reward_id}/opt-in")
def opt_in(reward_id: str, body: OptInRequest, db: Session = Depends(get_session)):
    with bind_log_context(reward_id=reward_id, bet_id=body.bet_id, user_id=body.user_id):
        result = opt_in_service.opt_in(
            db,
            reward_id,
            user_id=body.user_id,
            bet_id=body.bet_id,
            selections=body.ticket.to_selections(),
        )
    if not result.success:
        return service_error_response(result)

    reward = result.data["reward"]
    return {
        "reward_id": reward.id,
        "status": reward.status,
        "ride_started": result.data["ride_started"],
        "end_time": reward.end_time.isoformat(),
    }
