"""Ordering of valued positions against the margin rate."""

from typing import Any, Callable, Dict, List, Optional

from margin_watch.config import MARGIN_RATE_ANNUAL
from margin_watch.models import PositionValuation


def is_below_margin(valuation: PositionValuation, margin_rate: float = MARGIN_RATE_ANNUAL) -> bool:
    """True if the position has a return and it is under the margin rate."""
    return valuation.return_if_correct is not None and valuation.return_if_correct < margin_rate


def rank_below_margin(
    valuations: List[PositionValuation],
    margin_rate: float = MARGIN_RATE_ANNUAL
) -> List[PositionValuation]:
    """Positions returning less than the margin rate, worst first."""
    below = [v for v in valuations if is_below_margin(v, margin_rate)]
    return sorted(below, key=lambda v: v.return_if_correct)


def rank_all_grouped(
    valuations: List[PositionValuation],
    margin_rate: float = MARGIN_RATE_ANNUAL
) -> List[PositionValuation]:
    """All positions with a return: below-margin ascending, then the rest descending.

    Positions without a computable return are left out.
    """
    with_returns = [v for v in valuations if v.return_if_correct is not None]

    below = [v for v in with_returns if v.return_if_correct < margin_rate]
    above = [v for v in with_returns if v.return_if_correct >= margin_rate]

    below.sort(key=lambda v: v.return_if_correct)
    above.sort(key=lambda v: v.return_if_correct, reverse=True)

    return below + above


SORTABLE_COLUMNS: Dict[str, Callable[[PositionValuation], Any]] = {
    "market": lambda v: v.question.lower(),
    "position": lambda v: v.shares,
    "sale_value": lambda v: v.sale_value,
    "fair_value": lambda v: v.fair_value,
    "payout": lambda v: v.shares,
    "slippage": lambda v: v.slippage,
    "probability": lambda v: v.probability,
    "days": lambda v: v.days_until_close,
    "return": lambda v: v.return_if_correct,
}


def sort_valuations(
    valuations: List[PositionValuation],
    column: str,
    descending: bool = False
) -> List[PositionValuation]:
    """Sort positions by a display column.

    Rows whose value for the column is unavailable go last in either
    direction. The input list is not modified.

    Raises:
        ValueError: If column is not one of SORTABLE_COLUMNS
    """
    key: Optional[Callable[[PositionValuation], Any]] = SORTABLE_COLUMNS.get(column)
    if key is None:
        raise ValueError(f"Unknown sort column: {column}. Choose from {', '.join(SORTABLE_COLUMNS)}")

    present = [v for v in valuations if key(v) is not None]
    missing = [v for v in valuations if key(v) is None]
    return sorted(present, key=key, reverse=descending) + missing
