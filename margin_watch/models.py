"""Data models for the Manifold margin analyzer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


DUST_THRESHOLD = 0.01  # Holdings below this many shares are ignored
DEFAULT_WEIGHT = 0.5

MANIFOLD_SITE = "https://manifold.markets"


class Outcome(str, Enum):
    """One side of a binary question."""
    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> "Outcome":
        return Outcome.NO if self is Outcome.YES else Outcome.YES


class Mechanism(str, Enum):
    """Market pricing mechanism as reported by the API."""
    SINGLE_OUTCOME_AMM = "cpmm-1"
    MULTI_OUTCOME_AMM = "cpmm-multi-1"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Mechanism":
        """Map an API mechanism string, treating anything unknown as OTHER."""
        for mechanism in (cls.SINGLE_OUTCOME_AMM, cls.MULTI_OUTCOME_AMM):
            if raw == mechanism.value:
                return mechanism
        return cls.OTHER

    @property
    def is_amm(self) -> bool:
        return self in (Mechanism.SINGLE_OUTCOME_AMM, Mechanism.MULTI_OUTCOME_AMM)


@dataclass(frozen=True)
class Pool:
    """AMM reserves for one binary question."""
    yes: float = 0.0
    no: float = 0.0

    @property
    def is_usable(self) -> bool:
        """Both reserves must be strictly positive to price against the pool."""
        return self.yes > 0 and self.no > 0

    def get(self, outcome: Outcome) -> float:
        return self.yes if outcome is Outcome.YES else self.no


@dataclass(frozen=True)
class Answer:
    """One answer of a multi-outcome market, with its own pool."""
    id: str
    probability: Optional[float] = None
    pool: Pool = field(default_factory=Pool)
    is_resolved: bool = False
    text: str = ""


@dataclass(frozen=True)
class MarketSnapshot:
    """Market state at fetch time.

    close_time is epoch milliseconds, as returned by the Manifold API.
    """
    id: str
    mechanism: Mechanism
    is_resolved: bool = False
    weight: float = DEFAULT_WEIGHT
    close_time: Optional[int] = None
    probability: Optional[float] = None
    pool: Pool = field(default_factory=Pool)
    answers: List[Answer] = field(default_factory=list)
    question: str = "Unknown"
    slug: str = ""
    creator_username: str = ""

    @property
    def url(self) -> str:
        """Link to the market page, empty when the slug is unknown."""
        if not self.slug:
            return ""
        return f"{MANIFOLD_SITE}/{self.creator_username}/{self.slug}"

    def find_answer(self, answer_id: Optional[str]) -> Optional[Answer]:
        if not answer_id:
            return None
        for answer in self.answers:
            if answer.id == answer_id:
                return answer
        return None


@dataclass(frozen=True)
class HoldingRecord:
    """A user's cumulative shares in one market (or one answer of it).

    Only the dominant side is considered; the smaller side is ignored
    rather than netted against it.
    """
    market_id: str
    answer_id: Optional[str] = None
    yes_shares: float = 0.0
    no_shares: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.yes_shares <= 0 and self.no_shares <= 0

    @property
    def outcome(self) -> Outcome:
        return Outcome.YES if self.yes_shares > self.no_shares else Outcome.NO

    @property
    def shares(self) -> float:
        return self.yes_shares if self.yes_shares > self.no_shares else self.no_shares


@dataclass
class UserPositions:
    """Merged result of a paginated positions fetch."""
    holdings_by_market: Dict[str, List[HoldingRecord]] = field(default_factory=dict)
    markets: List[MarketSnapshot] = field(default_factory=list)

    def market_lookup(self) -> Dict[str, MarketSnapshot]:
        return {market.id: market for market in self.markets}


@dataclass
class PositionValuation:
    """Valuation of a single holding.

    days_until_close and return_if_correct are None when unavailable,
    which is distinct from a value of zero.
    """
    market_id: str
    answer_id: Optional[str]
    question: str
    answer_text: Optional[str]
    url: str
    outcome: Outcome
    shares: float
    sale_value: float
    fair_value: float
    slippage: float
    probability: float
    days_until_close: Optional[float] = None
    return_if_correct: Optional[float] = None

    @property
    def has_return(self) -> bool:
        return self.return_if_correct is not None
