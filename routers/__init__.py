"""
ROUTERS - FastAPI Router Modules

One router per resource. Every route requires authentication (core.auth).

Usage:
    from routers import rewards_router, boost_router

    app.include_router(rewards_router)
    app.include_router(boost_router)
"""

from .reward_profiles import router as reward_profiles_router
from .rewards import router as rewards_router
from .boost import router as boost_router
from .settlement import router as settlement_router
from .simulation import router as simulation_router

__all__ = [
    'reward_profiles_router',
    'rewards_router',
    'boost_router',
    'settlement_router',
    'simulation_router',
]
