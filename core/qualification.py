"""
QUALIFICATION.PY - Ticket selection qualification

Selections are plain dicts as they arrive on the ticket:
    {"id": "sel-1", "odds": 1.85, "eligible": True, "ineligible_reason": None, ...}

A selection qualifies when it is not explicitly marked ineligible and its
decimal odds meet the profile minimum. Partitioning preserves order.
"""

from functools import reduce
from typing import Any, Dict, List, Sequence

from core.rounding import round_to

Selection = Dict[str, Any]


def is_explicitly_ineligible(selection: Selection) -> bool:
    if selection.get("eligible") is False:
        return True
    return bool(selection.get("ineligible_reason"))


def filter_qualifying_selections(selections: Sequence[Selection], min_odds: float) -> Dict[str, List[Selection]]:
    """
    Partition selections into qualifying and disqualified.

    Returns:
        {"qualifying": [...], "disqualified": [...]}
    """
    qualifying: List[Selection] = []
    disqualified: List[Selection] = []

    for selection in selections:
        if is_explicitly_ineligible(selection):
            disqualified.append(selection)
        elif float(selection.get("odds", 0)) >= min_odds:
            qualifying.append(selection)
        else:
            disqualified.append(selection)

    return {"qualifying": qualifying, "disqualified": disqualified}


def calculate_combined_odds(selections: Sequence[Selection]) -> float:
    """Product of decimal odds. An empty ticket is 0, not 1."""
    if not selections:
        return 0.0
    return reduce(lambda acc, sel: acc * float(sel["odds"]), selections, 1.0)


def meets_min_selection_count(count: int, min_selections: int) -> bool:
    return count >= min_selections


def meets_combined_odds_threshold(combined_odds: float, min_combined_odds: float) -> bool:
    return combined_odds >= min_combined_odds


def round_odds(odds: float, decimals: int = 4) -> float:
    return round_to(odds, decimals)


__all__ = [
    "Selection",
    "is_explicitly_ineligible",
    "filter_qualifying_selections",
    "calculate_combined_odds",
    "meets_min_selection_count",
    "meets_combined_odds_threshold",
    "round_odds",
]
