"""
REASON_CODES.PY - Service-layer reason codes

The pure engine signals ineligibility with 0/False sentinels. Services turn
those into one of these codes; routers turn codes into HTTP statuses.
"""

from enum import Enum


class ReasonCode(str, Enum):
    ELIGIBLE = "ELIGIBLE"

    # Reward state
    REWARD_NOT_FOUND = "REWARD_NOT_FOUND"
    REWARD_ALREADY_USED = "REWARD_ALREADY_USED"
    REWARD_EXPIRED = "REWARD_EXPIRED"
    ALREADY_OPTED_IN = "ALREADY_OPTED_IN"
    NOT_OPTED_IN = "NOT_OPTED_IN"

    # Profile
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    PROFILE_INACTIVE = "PROFILE_INACTIVE"

    # Ticket eligibility
    MIN_SELECTIONS_NOT_MET = "MIN_SELECTIONS_NOT_MET"
    MIN_COMBINED_ODDS_NOT_MET = "MIN_COMBINED_ODDS_NOT_MET"

    # Ride timing
    RIDE_CRASHED = "RIDE_CRASHED"
    RIDE_ENDED = "RIDE_ENDED"

    # Lock / settlement
    LOCK_NOT_FOUND = "LOCK_NOT_FOUND"

    # Generic
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


NOT_FOUND_CODES = frozenset({
    ReasonCode.REWARD_NOT_FOUND,
    ReasonCode.PROFILE_NOT_FOUND,
    ReasonCode.LOCK_NOT_FOUND,
})

CONFLICT_CODES = frozenset({
    ReasonCode.REWARD_ALREADY_USED,
    ReasonCode.REWARD_EXPIRED,
    ReasonCode.ALREADY_OPTED_IN,
    ReasonCode.NOT_OPTED_IN,
    ReasonCode.PROFILE_INACTIVE,
    ReasonCode.RIDE_CRASHED,
    ReasonCode.RIDE_ENDED,
})


def http_status_for(code: ReasonCode) -> int:
    """HTTP status a router should use for a failed service result."""
    if code in NOT_FOUND_CODES:
        return 404
    if code in CONFLICT_CODES:
        return 409
    if code == ReasonCode.UNAUTHORIZED:
        return 401
    if code == ReasonCode.INTERNAL_ERROR:
        return 500
    return 422


__all__ = [
    "ReasonCode",
    "NOT_FOUND_CODES",
    "CONFLICT_CODES",
    "http_status_for",
]
