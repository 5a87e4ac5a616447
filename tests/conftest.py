"""Shared fixtures for the margin watch test suite."""

from typing import List, Optional
from unittest.mock import Mock

import pytest

from margin_watch.models import (
    Answer,
    HoldingRecord,
    MarketSnapshot,
    Mechanism,
    Pool,
    PositionValuation,
    Outcome,
    UserPositions,
)
from margin_watch.valuation import MS_PER_DAY

# Fixed clock: 2026-01-01T00:00:00Z in epoch milliseconds
NOW_MS = 1_767_225_600_000


def days_from_now(days: float) -> int:
    return int(NOW_MS + days * MS_PER_DAY)


def make_market(
    market_id: str = "m1",
    mechanism: Mechanism = Mechanism.SINGLE_OUTCOME_AMM,
    pool: Pool = Pool(50.0, 50.0),
    probability: Optional[float] = 0.5,
    close_in_days: Optional[float] = 30,
    answers: Optional[List[Answer]] = None,
    **kwargs
) -> MarketSnapshot:
    close_time = days_from_now(close_in_days) if close_in_days is not None else None
    return MarketSnapshot(
        id=market_id,
        mechanism=mechanism,
        pool=pool,
        probability=probability,
        close_time=close_time,
        answers=answers or [],
        question=kwargs.pop("question", f"Question {market_id}?"),
        **kwargs
    )


def make_valuation(return_if_correct: Optional[float], name: str = "q", **kwargs) -> PositionValuation:
    fields = dict(
        market_id=name,
        answer_id=None,
        question=name,
        answer_text=None,
        url="",
        outcome=Outcome.YES,
        shares=10.0,
        sale_value=9.0,
        fair_value=9.5,
        slippage=0.05,
        probability=0.9,
        days_until_close=30.0,
        return_if_correct=return_if_correct,
    )
    fields.update(kwargs)
    return PositionValuation(**fields)


@pytest.fixture
def balanced_pool() -> Pool:
    return Pool(yes=50.0, no=50.0)


@pytest.fixture
def single_market() -> MarketSnapshot:
    return make_market(slug="will-it-rain", creator_username="alice")


@pytest.fixture
def multi_market() -> MarketSnapshot:
    return make_market(
        market_id="multi",
        mechanism=Mechanism.MULTI_OUTCOME_AMM,
        pool=Pool(),
        probability=None,
        answers=[
            Answer(id="a1", probability=0.3, pool=Pool(70.0, 30.0), text="Red"),
            Answer(id="a2", probability=0.6, pool=Pool(40.0, 60.0), is_resolved=True, text="Blue"),
            Answer(id="a3", probability=None, pool=Pool(20.0, 80.0), text="Green"),
        ],
    )


@pytest.fixture
def positions(single_market, multi_market) -> UserPositions:
    return UserPositions(
        holdings_by_market={
            "m1": [HoldingRecord("m1", yes_shares=10.0)],
            "multi": [
                HoldingRecord("multi", answer_id="a1", no_shares=25.0),
                HoldingRecord("multi", answer_id="a2", yes_shares=5.0),
            ],
        },
        markets=[single_market, multi_market],
    )


def mock_response(status_code: int = 200, payload=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def session() -> Mock:
    return Mock()
