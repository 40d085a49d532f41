# services/__init__.py
# Service layer for the ride boost backend: each service takes an open
# SQLAlchemy Session and returns a ServiceResult.

from .results import ServiceError, ServiceResult
from .reward_profile_service import RewardProfileService, reward_profile_service
from .entitlement_service import EntitlementService, entitlement_service
from .opt_in_service import OptInService, opt_in_service
from .boost_quote_service import BoostQuoteService, boost_quote_service
from .boost_lock_service import BoostLockService, boost_lock_service
from .settlement_service import SettlementService, settlement_service
from .simulation_service import SimulationService, simulation_service

__all__ = [
    "ServiceError",
    "ServiceResult",
    "RewardProfileService",
    "reward_profile_service",
    "EntitlementService",
    "entitlement_service",
    "OptInService",
    "opt_in_service",
    "BoostQuoteService",
    "boost_quote_service",
    "BoostLockService",
    "boost_lock_service",
    "SettlementService",
    "settlement_service",
    "SimulationService",
    "simulation_service",
]
