"""
BOOST.PY - Boost Quote / Lock Router

Endpoints:
    POST /boost/quote           - Current boost for an entered reward's bet
    POST /boost/lock            - Freeze the boost for a bet (idempotent per bet_id)
    GET  /boost/locks/{bet_id}  - Stored lock for a bet
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import verify_api_key
from core.error_responses import not_found_response, service_error_response
from core.structured_logging import bind_log_context
from models.api_models import LockRequest, QuoteRequest
from routers.dependencies import get_session
from services.boost_lock_service import boost_lock_service, lock_response
from services.boost_quote_service import boost_quote_service

router = APIRouter(tags=["boost"], dependencies=[Depends(verify_api_key)])


@router.post("/boost/quote")
def get_quote(body: QuoteRequest, db: Session = Depends(get_session)):
    """
    Ineligible quotes are still 200 responses; reason_code says why.
    """
    with bind_log_context(reward_id=body.reward_id, bet_id=body.bet_id, user_id=body.user_id):
        result = boost_quote_service.get_quote(db, body.user_id, body.reward_id, body.bet_id)
    if not result.success:
        return service_error_response(result)
    return result.data


@router.post("/boost/lock", status_code=201)
def lock_boost(body: LockRequest, db: Session = Depends(get_session)):
    with bind_log_context(reward_id=body.reward_id, bet_id=body.bet_id, user_id=body.user_id):
        result = boost_lock_service.lock_boost(db, body.user_id, body.reward_id, body.bet_id)
    if not result.success:
        return service_error_response(result)
    return result.data


@router.get("/boost/locks/{bet_id}")
def get_lock(bet_id: str, db: Session = Depends(get_session)):
    result = boost_lock_service.get_lock(db, bet_id)
    if result.data is None:
        return not_found_response(f"No lock found for bet {bet_id}")
    return lock_response(result.data)
