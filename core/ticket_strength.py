"""
TICKET_STRENGTH.PY - Convex ticket strength score
=================================================

Strength summarises how selection-rich and long-odds a ticket is, in [0, 1].

    selection_factor = min(count - min_selections + 1, max_bonus) / max_bonus
    odds_factor      = max(ln(combined_odds) / ln(base_odds * 100), 0.1)
    strength         = min(selection_factor^exp * odds_factor^exp, 1)

With exp = 1.5 the score is convex: a ticket strong on BOTH axes scores
more than one strong on either alone.

Returns 0 when the ticket is below min_selections or combined odds <= 1.
"""

import math

from core.rounding import round_to

DEFAULT_BASE_ODDS = 3.0
DEFAULT_EXPONENT = 1.5
DEFAULT_MAX_SELECTION_BONUS = 10
MIN_ODDS_FACTOR = 0.1


def compute_ticket_strength(
    qualifying_count: int,
    combined_odds: float,
    min_selections: int,
    base_odds: float = DEFAULT_BASE_ODDS,
    exponent: float = DEFAULT_EXPONENT,
    max_selection_bonus: int = DEFAULT_MAX_SELECTION_BONUS,
) -> float:
    if qualifying_count < min_selections or combined_odds <= 1:
        return 0.0

    selection_bonus = min(qualifying_count - min_selections + 1, max_selection_bonus)
    selection_factor = selection_bonus / max_selection_bonus

    odds_factor = math.log(combined_odds) / math.log(base_odds * 100)
    odds_factor = max(odds_factor, MIN_ODDS_FACTOR)

    raw = (selection_factor ** exponent) * (odds_factor ** exponent)
    return round_to(min(raw, 1.0), 6)


def compute_linear_strength(qualifying_count: int, combined_odds: float, min_selections: int) -> float:
    """Linear variant kept for tuning comparisons. log10(10000) = 4 normalises odds."""
    if qualifying_count < min_selections or combined_odds <= 1:
        return 0.0

    selection_score = (qualifying_count - min_selections + 1) / 10
    odds_score = math.log10(combined_odds) / 4
    return round_to(min(selection_score * odds_score, 1.0), 6)


__all__ = [
    "compute_ticket_strength",
    "compute_linear_strength",
]
