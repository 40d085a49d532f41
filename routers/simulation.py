"""
SIMULATION.PY - Admin ride simulation

Endpoints:
    POST /simulation/ride  - Sample a ride curve for a seed / profile / ticket
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import verify_api_key
from core.error_responses import service_error_response
from models.api_models import SimulationRequest
from routers.dependencies import get_session
from services.simulation_service import simulation_service

router = APIRouter(tags=["simulation"], dependencies=[Depends(verify_api_key)])


@router.post("/simulation/ride")
def simulate_ride(body: SimulationRequest, db: Session = Depends(get_session)):
    result = simulation_service.simulate_ride(
        db,
        seed=body.seed,
        profile_id=body.profile_id,
        min_boost_pct=body.min_boost_pct,
        max_boost_pct=body.max_boost_pct,
        sample_points=body.sample_points,
        selections=body.ticket.to_selections() if body.ticket else None,
    )
    if not result.success:
        return service_error_response(result)
    return result.data
