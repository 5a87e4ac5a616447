"""
Portfolio Service

Business logic for checking a Manifold user's open positions against the
margin rate. Fetches positions, values them under the AMM, and ranks the
ones not worth holding. Framework-agnostic so it can back the Streamlit app
or the command line.
"""

from typing import Callable, List, Optional

from margin_watch.config import MARGIN_RATE_ANNUAL
from margin_watch.manifold_client import ManifoldClient
from margin_watch.models import PositionValuation
from margin_watch.ranking import rank_all_grouped, rank_below_margin
from margin_watch.structured_logger import EventType, clear_context, get_logger, set_context
from margin_watch.valuation import compute_valuations, now_ms

logger = get_logger(__name__)

SITE_MARKER = "manifold.markets/"


def normalize_username(text: str) -> str:
    """
    Extract a username from user input.

    Accepts a bare username, "@username", or a pasted profile/market URL
    such as https://manifold.markets/someone?tab=portfolio.

    Raises:
        ValueError: If no username is left after cleanup
    """
    username = (text or "").strip()

    if SITE_MARKER in username:
        username = username.split(SITE_MARKER, 1)[1].split("/")[0].split("?")[0]

    username = username.lstrip("@").strip()
    if not username:
        raise ValueError("Please enter a username")
    return username


class PortfolioService:
    """Service for flagging positions that return less than the margin rate."""

    def __init__(
        self,
        client: Optional[ManifoldClient] = None,
        margin_rate_annual: float = MARGIN_RATE_ANNUAL,
        clock: Callable[[], int] = now_ms
    ):
        self.client = client or ManifoldClient()
        self.margin_rate_annual = margin_rate_annual
        self.clock = clock

    def rank(self, valuations: List[PositionValuation], show_all: bool = False) -> List[PositionValuation]:
        """Below-margin positions only, or every position grouped around the margin rate."""
        if show_all:
            return rank_all_grouped(valuations, self.margin_rate_annual)
        return rank_below_margin(valuations, self.margin_rate_annual)

    def summarize(self, valuations: List[PositionValuation], ranked: List[PositionValuation]) -> dict:
        flagged = [v for v in ranked if v.return_if_correct is not None
                   and v.return_if_correct < self.margin_rate_annual]
        return {
            "total_positions": len(valuations),
            "flagged_positions": len(flagged),
            "total_sale_value": sum(v.sale_value for v in flagged),
            "total_payout": sum(v.shares for v in flagged),
            "margin_rate_annual": self.margin_rate_annual,
        }

    def analyze_user(
        self,
        username: str,
        show_all: bool = False,
        on_progress: Optional[Callable[[str], None]] = None
    ) -> dict:
        """
        Complete analysis of a user's open positions.

        Args:
            username: Manifold username or pasted profile URL
            show_all: Rank every position instead of only below-margin ones
            on_progress: Optional callback receiving status lines

        Returns:
            Dictionary containing:
            - username, user_id
            - valuations: every valued position, unranked
            - positions: ranked positions for display
            - summary: Summary statistics

        Raises:
            ValueError: If the username is empty
            LookupFailure: If the username does not resolve
            RetrievalFailure: If positions could not be fetched
        """
        username = normalize_username(username)
        set_context(username=username)
        try:
            if on_progress:
                on_progress("Looking up user...")
            user_id = self.client.get_user_id(username)

            if on_progress:
                on_progress("Fetching positions...")
            positions = self.client.get_user_positions(user_id, on_progress)

            if on_progress:
                on_progress("Analyzing positions...")
            valuations = compute_valuations(positions, self.clock())
            ranked = self.rank(valuations, show_all)

            summary = self.summarize(valuations, ranked)
            logger.info("Ranked positions", extra={
                "event_type": EventType.RANKING,
                "show_all": show_all,
                **summary,
            })

            return {
                "username": username,
                "user_id": user_id,
                "valuations": valuations,
                "positions": ranked,
                "summary": summary,
            }
        finally:
            clear_context()
