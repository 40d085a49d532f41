"""
Pydantic models for API request validation.
Provides type safety, automatic validation, and OpenAPI documentation.

Responses are plain dicts built by the services; only request bodies are modelled.
"""

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class BetOutcome(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    VOID = "VOID"
    CASHOUT = "CASHOUT"


# ============================================================================
# TICKET MODELS
# ============================================================================

class SelectionModel(BaseModel):
    """One leg of a bet ticket (decimal odds)."""
    id: str = Field(..., min_length=1, description="Selection identifier")
    odds: float = Field(..., gt=0, description="Decimal odds")
    name: Optional[str] = Field(None, description="Display name")
    market: Optional[str] = Field(None, description="Market name")
    event: Optional[str] = Field(None, description="Event name")
    eligible: Optional[bool] = Field(None, description="False marks the selection as ineligible")
    ineligible_reason: Optional[str] = Field(None, max_length=200, description="Why the selection is ineligible")

    def to_selection(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TicketModel(BaseModel):
    selections: List[SelectionModel] = Field(..., min_length=1, description="Ticket selections")
    stake: Optional[float] = Field(None, gt=0, description="Stake amount")

    def to_selections(self) -> List[Dict[str, Any]]:
        return [s.to_selection() for s in self.selections]


# ============================================================================
# REWARD PROFILE MODELS
# ============================================================================

class CreateRewardProfileRequest(BaseModel):
    """Operator-defined reward profile."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    min_selections: int = Field(..., ge=1, le=20, description="Qualifying selections required")
    min_combined_odds: float = Field(..., gt=0, description="Combined odds required")
    min_selection_odds: float = Field(..., gt=0, description="Odds a selection needs to qualify")
    min_boost_pct: float = Field(..., ge=0, le=1)
    max_boost_pct: float = Field(..., ge=0, le=10)
    max_boost_min_selections: Optional[int] = Field(None, ge=1, le=50)
    max_boost_min_combined_odds: Optional[float] = Field(None, gt=0)
    ride_duration_seconds: int = Field(..., ge=60, le=86400)

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()

    @field_validator('max_boost_pct')
    @classmethod
    def max_not_below_min(cls, v, info: ValidationInfo):
        min_boost = info.data.get('min_boost_pct')
        if min_boost is not None and min_boost > v:
            raise ValueError("min_boost_pct must be less than or equal to max_boost_pct")
        return v

    @field_validator('max_boost_min_selections')
    @classmethod
    def max_selections_not_below_entry(cls, v, info: ValidationInfo):
        min_selections = info.data.get('min_selections')
        if v is not None and min_selections is not None and v < min_selections:
            raise ValueError("max_boost_min_selections must be greater than or equal to min_selections")
        return v

    @field_validator('max_boost_min_combined_odds')
    @classmethod
    def max_odds_not_below_entry(cls, v, info: ValidationInfo):
        min_odds = info.data.get('min_combined_odds')
        if v is not None and min_odds is not None and v < min_odds:
            raise ValueError("max_boost_min_combined_odds must be greater than or equal to min_combined_odds")
        return v


class UpdateRewardProfileRequest(BaseModel):
    """Partial update; cross-field rules are checked against the merged profile."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    min_selections: Optional[int] = Field(None, ge=1, le=20)
    min_combined_odds: Optional[float] = Field(None, gt=0)
    min_selection_odds: Optional[float] = Field(None, gt=0)
    min_boost_pct: Optional[float] = Field(None, ge=0, le=1)
    max_boost_pct: Optional[float] = Field(None, ge=0, le=10)
    max_boost_min_selections: Optional[int] = Field(None, ge=1, le=50)
    max_boost_min_combined_odds: Optional[float] = Field(None, gt=0)
    ride_duration_seconds: Optional[int] = Field(None, ge=60, le=86400)
    is_active: Optional[bool] = None


# ============================================================================
# REWARD MODELS
# ============================================================================

class GrantRewardRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="User identifier")
    profile_version_id: str = Field(..., min_length=1, description="Reward profile version id")
    duration_seconds: Optional[int] = Field(None, gt=0, description="Requested duration (recorded only)")


class EligibilityRequest(BaseModel):
    """Eligibility precheck before the ride starts."""
    user_id: str = Field(..., min_length=1)
    ticket: TicketModel


class OptInRequest(BaseModel):
    """Start the ride for a placed bet."""
    user_id: str = Field(..., min_length=1)
    bet_id: str = Field(..., min_length=1)
    ticket: TicketModel


# ============================================================================
# BOOST / SETTLEMENT MODELS
# ============================================================================

class QuoteRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    reward_id: str = Field(..., min_length=1)
    bet_id: str = Field(..., min_length=1)


class LockRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    reward_id: str = Field(..., min_length=1)
    bet_id: str = Field(..., min_length=1)


class SettlementRequest(BaseModel):
    bet_id: str = Field(..., min_length=1)
    outcome: BetOutcome = Field(..., description="WIN, LOSS, VOID or CASHOUT")
    winnings: float = Field(..., ge=0, description="Gross winnings on the bet")


class SimulationRequest(BaseModel):
    """Admin ride simulation."""
    profile_id: Optional[str] = None
    seed: Optional[str] = None
    min_boost_pct: Optional[float] = Field(None, ge=0, le=1)
    max_boost_pct: Optional[float] = Field(None, ge=0, le=10)
    sample_points: Optional[int] = Field(None, ge=10, le=1000)
    ticket: Optional[TicketModel] = None


__all__ = [
    "BetOutcome",
    "SelectionModel",
    "TicketModel",
    "CreateRewardProfileRequest",
    "UpdateRewardProfileRequest",
    "GrantRewardRequest",
    "EligibilityRequest",
    "OptInRequest",
    "QuoteRequest",
    "LockRequest",
    "SettlementRequest",
    "SimulationRequest",
]
