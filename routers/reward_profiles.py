"""
REWARD_PROFILES.PY - Reward Profile Router

Operator management of reward profile versions.

Endpoints:
    POST   /reward-profiles        - Create a profile version
    GET    /reward-profiles        - List profiles (?active_only=true)
    GET    /reward-profiles/{id}   - Get one profile
    PATCH  /reward-profiles/{id}   - Partial update
    DELETE /reward-profiles/{id}   - Deactivate (soft delete)
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from core.auth import verify_api_key
from core.error_responses import service_error_response
from models.api_models import CreateRewardProfileRequest, UpdateRewardProfileRequest
from routers.dependencies import get_session
from services.reward_profile_service import reward_profile_service

router = APIRouter(tags=["reward-profiles"], dependencies=[Depends(verify_api_key)])


@router.post("/reward-profiles", status_code=201)
def create_profile(body: CreateRewardProfileRequest, db: Session = Depends(get_session)):
    result = reward_profile_service.create_profile(db, body.model_dump())
    if not result.success:
        return service_error_response(result)
    return result.data.to_dict()


@router.get("/reward-profiles")
def list_profiles(active_only: bool = False, db: Session = Depends(get_session)):
    result = reward_profile_service.list_profiles(db, active_only=active_only)
    profiles = [p.to_dict() for p in result.data]
    return {"profiles": profiles, "count": len(profiles)}


@router.get("/reward-profiles/{profile_id}")
def get_profile(profile_id: str, db: Session = Depends(get_session)):
    result = reward_profile_service.get_profile(db, profile_id)
    if not result.success:
        return service_error_response(result)
    return result.data.to_dict()


@router.patch("/reward-profiles/{profile_id}")
def update_profile(profile_id: str, body: UpdateRewardProfileRequest, db: Session = Depends(get_session)):
    result = reward_profile_service.update_profile(db, profile_id, body.model_dump(exclude_unset=True))
    if not result.success:
        return service_error_response(result)
    return result.data.to_dict()


@router.delete("/reward-profiles/{profile_id}", status_code=204)
def deactivate_profile(profile_id: str, db: Session = Depends(get_session)):
    result = reward_profile_service.deactivate_profile(db, profile_id)
    if not result.success:
        return service_error_response(result)
    return Response(status_code=204)
