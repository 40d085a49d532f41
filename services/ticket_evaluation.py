"""
Ticket evaluation shared by eligibility, opt-in, quote, lock and simulation.

Runs qualification and strength scoring against a profile's thresholds and
picks the first failing reason code (selections before odds).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from core.qualification import (
    calculate_combined_odds,
    filter_qualifying_selections,
    meets_combined_odds_threshold,
    meets_min_selection_count,
)
from core.reason_codes import ReasonCode
from core.ticket_strength import compute_ticket_strength


@dataclass
class TicketEvaluation:
    selections: List[Dict[str, Any]]
    qualifying: List[Dict[str, Any]] = field(default_factory=list)
    disqualified: List[Dict[str, Any]] = field(default_factory=list)
    combined_odds: float = 0.0
    ticket_strength: float = 0.0
    reason_code: ReasonCode = ReasonCode.ELIGIBLE

    @property
    def eligible(self) -> bool:
        return self.reason_code == ReasonCode.ELIGIBLE

    @property
    def qualifying_count(self) -> int:
        return len(self.qualifying)

    @property
    def total_count(self) -> int:
        return len(self.selections)


def evaluate_ticket(selections: Sequence[Dict[str, Any]], profile) -> TicketEvaluation:
    partition = filter_qualifying_selections(selections, profile.min_selection_odds)
    qualifying = partition["qualifying"]
    combined_odds = calculate_combined_odds(qualifying)
    strength = compute_ticket_strength(len(qualifying), combined_odds, profile.min_selections)

    if not meets_min_selection_count(len(qualifying), profile.min_selections):
        reason = ReasonCode.MIN_SELECTIONS_NOT_MET
    elif not meets_combined_odds_threshold(combined_odds, profile.min_combined_odds):
        reason = ReasonCode.MIN_COMBINED_ODDS_NOT_MET
    else:
        reason = ReasonCode.ELIGIBLE

    return TicketEvaluation(
        selections=list(selections),
        qualifying=qualifying,
        disqualified=partition["disqualified"],
        combined_odds=combined_odds,
        ticket_strength=strength,
        reason_code=reason,
    )


def ineligible_message(evaluation: TicketEvaluation, profile) -> str:
    if evaluation.reason_code == ReasonCode.MIN_SELECTIONS_NOT_MET:
        return (
            f"Minimum {profile.min_selections} qualifying selections required, "
            f"got {evaluation.qualifying_count}"
        )
    return (
        f"Minimum combined odds of {profile.min_combined_odds} required, "
        f"got {evaluation.combined_odds:.2f}"
    )


__all__ = ["TicketEvaluation", "evaluate_ticket", "ineligible_message"]
