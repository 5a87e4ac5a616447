"""
Position valuation.

Turns raw holdings into PositionValuation records: liquidation value under
the AMM, no-slippage fair value, and the annualized return earned by holding
to resolution if the position is correct.
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from margin_watch.amm import quote_position
from margin_watch.models import (
    DUST_THRESHOLD,
    HoldingRecord,
    MarketSnapshot,
    Mechanism,
    Pool,
    PositionValuation,
    UserPositions,
)
from margin_watch.structured_logger import EventType, get_logger

logger = get_logger(__name__)

MS_PER_DAY = 1000 * 60 * 60 * 24
DAYS_PER_YEAR = 365
MIN_HORIZON_DAYS = 1.0


@dataclass(frozen=True)
class PricingInputs:
    """Probability and pool used to price one holding."""
    probability: Optional[float]
    pool: Pool
    answer_text: Optional[str] = None


def now_ms() -> int:
    return int(time.time() * 1000)


def days_until_close(close_time: Optional[int], current_time: int) -> Optional[float]:
    """Signed days between now and market close, or None without a close time."""
    if not close_time:
        return None
    return (close_time - current_time) / MS_PER_DAY


def return_if_correct(
    sale_value: float,
    shares: float,
    close_time: Optional[int],
    current_time: int
) -> Optional[float]:
    """Annualized return from holding to resolution if the position wins.

    Each winning share pays out 1, so the profit is shares - sale_value on a
    capital of sale_value. The horizon is floored at one day.

    Returns:
        Annualized return, or None when there is no close time, the market
        has already closed, or the position has no sale value
    """
    days = days_until_close(close_time, current_time)
    if days is None:
        return None
    if days <= 0 or sale_value <= 0:
        return None

    profit_if_correct = shares - sale_value
    effective_days = max(days, MIN_HORIZON_DAYS)
    return (profit_if_correct / sale_value) * (DAYS_PER_YEAR / effective_days)


# Pricing strategies, tried in order. Each returns None when it cannot
# resolve inputs for the holding.

def _single_outcome_inputs(market: MarketSnapshot, holding: HoldingRecord) -> Optional[PricingInputs]:
    if market.mechanism is not Mechanism.SINGLE_OUTCOME_AMM:
        return None
    return PricingInputs(probability=market.probability, pool=market.pool)


def _answer_inputs(market: MarketSnapshot, holding: HoldingRecord) -> Optional[PricingInputs]:
    if market.mechanism is not Mechanism.MULTI_OUTCOME_AMM:
        return None
    answer = market.find_answer(holding.answer_id)
    if answer is None or answer.is_resolved:
        return None
    return PricingInputs(probability=answer.probability, pool=answer.pool, answer_text=answer.text)


def _with_pool_ratio(inputs: PricingInputs) -> Optional[PricingInputs]:
    """Fill a missing probability from the pool ratio no / (yes + no)."""
    if inputs.probability is not None:
        return inputs
    if not inputs.pool.is_usable:
        return None
    pool = inputs.pool
    return PricingInputs(
        probability=pool.no / (pool.yes + pool.no),
        pool=pool,
        answer_text=inputs.answer_text,
    )


PRICING_STRATEGIES: List[Callable[[MarketSnapshot, HoldingRecord], Optional[PricingInputs]]] = [
    _single_outcome_inputs,
    _answer_inputs,
]


def resolve_pricing(market: MarketSnapshot, holding: HoldingRecord) -> Optional[PricingInputs]:
    """Find the probability and pool for a holding.

    Returns:
        PricingInputs with a probability, or None if the holding can't be priced
    """
    for strategy in PRICING_STRATEGIES:
        inputs = strategy(market, holding)
        if inputs is None:
            continue
        return _with_pool_ratio(inputs)
    return None


def value_holding(
    market: MarketSnapshot,
    holding: HoldingRecord,
    current_time: int
) -> Optional[PositionValuation]:
    """Value one holding, or return None if it should be skipped."""
    if holding.is_empty:
        return None

    outcome = holding.outcome
    shares = holding.shares
    if shares < DUST_THRESHOLD:
        return None

    inputs = resolve_pricing(market, holding)
    if inputs is None:
        return None

    sale_value, fair, slip = quote_position(
        shares, outcome, inputs.probability, inputs.pool, market.weight, market.mechanism
    )

    return PositionValuation(
        market_id=market.id,
        answer_id=holding.answer_id,
        question=market.question,
        answer_text=inputs.answer_text,
        url=market.url,
        outcome=outcome,
        shares=shares,
        sale_value=sale_value,
        fair_value=fair,
        slippage=slip,
        probability=inputs.probability,
        days_until_close=days_until_close(market.close_time, current_time),
        return_if_correct=return_if_correct(sale_value, shares, market.close_time, current_time),
    )


def _skip_reason(market: Optional[MarketSnapshot]) -> Optional[str]:
    if market is None:
        return "market_missing"
    if market.is_resolved:
        return "market_resolved"
    if not market.mechanism.is_amm:
        return "unsupported_mechanism"
    return None


def compute_valuations(
    positions: UserPositions,
    current_time: Optional[int] = None
) -> List[PositionValuation]:
    """Value every priceable holding in a fetched positions set.

    Resolved markets, unsupported mechanisms, empty or dust holdings and
    holdings whose probability or pool can't be resolved are dropped
    silently. The result is the valid subset, in input order.

    Args:
        positions: Merged holdings and market snapshots
        current_time: Epoch milliseconds to value against (defaults to now)

    Returns:
        List of PositionValuation objects
    """
    if current_time is None:
        current_time = now_ms()

    markets = positions.market_lookup()
    valuations: List[PositionValuation] = []
    skipped: Dict[str, int] = {}

    for market_id, holdings in positions.holdings_by_market.items():
        market = markets.get(market_id)
        reason = _skip_reason(market)
        if reason:
            skipped[reason] = skipped.get(reason, 0) + len(holdings)
            logger.debug("Skipping market", extra={
                "event_type": EventType.VALUATION_SKIP,
                "market_id": market_id,
                "reason": reason,
                "holdings": len(holdings),
            })
            continue

        for holding in holdings:
            valuation = value_holding(market, holding, current_time)
            if valuation is None:
                skipped["unpriceable_holding"] = skipped.get("unpriceable_holding", 0) + 1
                logger.debug("Skipping holding", extra={
                    "event_type": EventType.VALUATION_SKIP,
                    "market_id": market_id,
                    "answer_id": holding.answer_id,
                    "reason": "unpriceable_holding",
                })
                continue
            valuations.append(valuation)

    logger.info("Valued positions", extra={
        "event_type": EventType.VALUATION_SUMMARY,
        "valued": len(valuations),
        "skipped": sum(skipped.values()),
        "skipped_by_reason": skipped,
    })

    return valuations
