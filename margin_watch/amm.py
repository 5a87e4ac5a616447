"""
AMM pricing for constant-weighted-product pools.

The pool holds YES and NO reserves with invariant k = yes^p * no^(1-p).
Buying `amount` of an outcome mints `amount` YES/NO pairs into the pool and
withdraws enough of the bought side to restore k.
"""
from margin_watch.models import Mechanism, Outcome, Pool


BISECTION_STEPS = 50
SHARE_TOLERANCE = 1e-4


def amm_probability(pool: Pool, p: float, outcome: Outcome) -> float:
    """Instantaneous AMM price of one share of `outcome`.

    For YES this is p*no / (p*no + (1-p)*yes), which reduces to
    no / (yes + no) at p = 0.5. Falls back to 0.5 for an empty pool.
    """
    weighted_no = p * pool.no
    weighted_yes = (1 - p) * pool.yes
    total = weighted_no + weighted_yes
    if total <= 0:
        return 0.5
    prob_yes = weighted_no / total
    return prob_yes if outcome is Outcome.YES else 1 - prob_yes


def shares_from_cost(pool: Pool, p: float, amount: float, outcome: Outcome) -> float:
    """Number of `outcome` shares received for spending `amount`.

    Args:
        pool: Current reserves
        p: Curve weight in (0, 1)
        amount: Currency spent
        outcome: Side being bought

    Returns:
        Shares received; exactly 0.0 when amount is 0
    """
    if amount == 0:
        return 0.0

    y = pool.yes
    n = pool.no
    k = y ** p * n ** (1 - p)

    if outcome is Outcome.YES:
        return y + amount - (k * (amount + n) ** (p - 1)) ** (1 / p)
    return n + amount - (k * (amount + y) ** (-p)) ** (1 / (1 - p))


def cost_from_shares(pool: Pool, p: float, shares: float, outcome: Outcome) -> float:
    """Amount that must be spent to receive `shares` of `outcome`.

    No closed form exists for general p, so this bisects on the amount over
    [shares * price, shares]: the cost is never below the current price and
    never above face value, since spending X always yields at least X shares.

    The loop runs at most BISECTION_STEPS halvings and returns early once the
    midpoint buys within SHARE_TOLERANCE of the target. The absolute error on
    the returned amount is bounded by (shares - lower_bound) / 2**50.

    Returns:
        Amount to spend; exactly 0.0 when shares <= 0
    """
    if shares <= 0:
        return 0.0

    min_amount = shares * amm_probability(pool, p, outcome)
    max_amount = shares
    mid = 0.0

    for _ in range(BISECTION_STEPS):
        mid = (min_amount + max_amount) / 2
        received = shares_from_cost(pool, p, mid, outcome)

        if abs(received - shares) < SHARE_TOLERANCE:
            return mid
        elif received < shares:
            min_amount = mid
        else:
            max_amount = mid

    return mid


def liquidation_value(
    shares: float,
    outcome: Outcome,
    pool: Pool,
    p: float,
    mechanism: Mechanism
) -> float:
    """Estimate what `shares` of `outcome` could be sold for right now.

    Selling is modelled as buying the same number of opposite shares and
    redeeming the matched pairs for 1 each, so the proceeds are the share
    count minus the cost of the opposite side. This ignores limit orders and
    is an estimate, not a quote.

    Returns:
        Value in [0, shares]; 0.0 for non-AMM markets or an unusable pool
    """
    if not mechanism.is_amm:
        return 0.0
    if not pool.is_usable:
        return 0.0

    buy_amount = cost_from_shares(pool, p, shares, outcome.opposite)
    return max(0.0, shares - buy_amount)


def fair_value(shares: float, probability: float, outcome: Outcome) -> float:
    """Value of the position at the current probability, with no slippage."""
    if outcome is Outcome.YES:
        return shares * probability
    return shares * (1 - probability)


def slippage(fair: float, amm_value: float) -> float:
    """Relative loss from selling into the pool instead of at the fair price."""
    if fair > 0 and amm_value > 0:
        return (fair - amm_value) / fair
    return 0.0


def select_sale_value(amm_value: float, fair: float) -> float:
    """Prefer the AMM estimate; fall back to fair value when it is unusable."""
    return amm_value if amm_value > 0 else fair


def quote_position(
    shares: float,
    outcome: Outcome,
    probability: float,
    pool: Pool,
    p: float,
    mechanism: Mechanism
) -> tuple:
    """Compute (sale_value, fair_value, slippage) for one holding."""
    amm_value = 0.0
    if pool.is_usable:
        amm_value = liquidation_value(shares, outcome, pool, p, mechanism)

    fair = fair_value(shares, probability, outcome)
    sale = select_sale_value(amm_value, fair)
    return sale, fair, slippage(fair, amm_value)
