"""
SETTLEMENT.PY - Settlement Router

Endpoints:
    POST /settlement            - Settle a locked bet (idempotent per bet_id)
    GET  /settlement/{bet_id}   - Stored settlement for a bet
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import verify_api_key
from core.error_responses import not_found_response, service_error_response
from core.structured_logging import bind_log_context
from models.api_models import SettlementRequest
from routers.dependencies import get_session
from services.settlement_service import settlement_service

router = APIRouter(tags=["settlement"], dependencies=[Depends(verify_api_key)])


@router.post("/settlement", status_code=201)
def settle_bet(body: SettlementRequest, db: Session = Depends(get_session)):
    with bind_log_context(bet_id=body.bet_id):
        result = settlement_service.settle_bet(db, body.bet_id, body.outcome.value, body.winnings)
    if not result.success:
        return service_error_response(result)
    return result.data


@router.get("/settlement/{bet_id}")
def get_settlement(bet_id: str, db: Session = Depends(get_session)):
    result = settlement_service.get_settlement(db, bet_id)
    if result.data is None:
        return not_found_response(f"No settlement found for bet {bet_id}")
    return result.data
