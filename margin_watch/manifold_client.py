"""
Manifold API Client

Read-only access to the Manifold Markets REST API: resolves a username to a
user ID and pages through that user's contract metrics, returning the merged
holdings and market snapshots.
"""

from typing import Callable, Dict, List, Optional

import requests

from margin_watch.config import DEFAULT_API_BASE, DEFAULT_PAGE_SIZE, DEFAULT_TIMEOUT
from margin_watch.models import (
    DEFAULT_WEIGHT,
    Answer,
    HoldingRecord,
    MarketSnapshot,
    Mechanism,
    Pool,
    UserPositions,
)
from margin_watch.structured_logger import EventType, get_logger

logger = get_logger(__name__)


class ManifoldAPIError(Exception):
    """Base error for failed Manifold API calls."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LookupFailure(ManifoldAPIError):
    """The username did not resolve to a user."""


class RetrievalFailure(ManifoldAPIError):
    """A positions page could not be fetched."""


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _optional_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_pool(raw: Optional[dict]) -> Pool:
    raw = raw or {}
    return Pool(yes=_to_float(raw.get("YES")), no=_to_float(raw.get("NO")))


def parse_answer(raw: dict) -> Answer:
    """Build an Answer from a multi-outcome market's answer entry."""
    return Answer(
        id=raw.get("id", ""),
        probability=_optional_float(raw.get("prob")),
        pool=Pool(yes=_to_float(raw.get("poolYes")), no=_to_float(raw.get("poolNo"))),
        is_resolved=raw.get("resolution") is not None,
        text=raw.get("text", "") or "",
    )


def parse_market(raw: dict) -> MarketSnapshot:
    """Build a MarketSnapshot from a contract returned by the API."""
    close_time = raw.get("closeTime")
    return MarketSnapshot(
        id=raw.get("id", ""),
        mechanism=Mechanism.parse(raw.get("mechanism")),
        is_resolved=bool(raw.get("isResolved", False)),
        weight=_to_float(raw.get("p")) or DEFAULT_WEIGHT,
        close_time=int(close_time) if close_time else None,
        probability=_optional_float(raw.get("prob")),
        pool=parse_pool(raw.get("pool")),
        answers=[parse_answer(a) for a in raw.get("answers") or []],
        question=raw.get("question") or "Unknown",
        slug=raw.get("slug", "") or "",
        creator_username=raw.get("creatorUsername", "") or "",
    )


def parse_holding(market_id: str, raw: dict) -> HoldingRecord:
    """Build a HoldingRecord from one contract metric entry."""
    total_shares = raw.get("totalShares") or {}
    return HoldingRecord(
        market_id=market_id,
        answer_id=raw.get("answerId"),
        yes_shares=_to_float(total_shares.get("YES")),
        no_shares=_to_float(total_shares.get("NO")),
    )


class ManifoldClient:
    """Client for the Manifold endpoints used by the analyzer."""

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        self.api_base = api_base.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_user_id(self, username: str) -> str:
        """
        Resolve a username to a user ID.

        Raises:
            LookupFailure: If the user does not exist or the lookup fails
            RetrievalFailure: If the request could not be sent
        """
        url = f"{self.api_base}/user/{username}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise RetrievalFailure(f"Error looking up user: {e}") from e

        if not response.ok:
            logger.warning("User lookup failed", extra={
                "event_type": EventType.USER_LOOKUP,
                "username": username,
                "status_code": response.status_code,
            })
            raise LookupFailure(f'User "{username}" not found', status_code=response.status_code)

        try:
            user_id = response.json().get("id")
        except requests.JSONDecodeError as e:
            raise LookupFailure(
                f'Unreadable response looking up user "{username}"',
                status_code=response.status_code,
            ) from e

        if not user_id:
            raise LookupFailure(f'User "{username}" not found', status_code=response.status_code)

        logger.info("Resolved user", extra={
            "event_type": EventType.USER_LOOKUP,
            "username": username,
            "user_id": user_id,
        })
        return user_id

    def _get_page(self, user_id: str, offset: int) -> dict:
        url = f"{self.api_base}/get-user-contract-metrics-with-contracts"
        params = {
            "userId": user_id,
            "limit": self.page_size,
            "offset": offset,
            "perAnswer": "true",
        }
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise RetrievalFailure(f"Error fetching positions: {e}") from e

        if not response.ok:
            logger.error("Positions page failed", extra={
                "event_type": EventType.ERROR,
                "user_id": user_id,
                "offset": offset,
                "status_code": response.status_code,
            })
            raise RetrievalFailure(
                f"Error fetching positions: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except requests.JSONDecodeError as e:
            raise RetrievalFailure(
                "Error fetching positions: unreadable response",
                status_code=response.status_code,
            ) from e

    def get_user_positions(
        self,
        user_id: str,
        on_progress: Optional[Callable[[str], None]] = None
    ) -> UserPositions:
        """
        Fetch every contract metric for a user, following pagination.

        Args:
            user_id: Manifold user ID
            on_progress: Optional callback receiving a status line per page

        Returns:
            UserPositions with holdings keyed by market ID and all market snapshots

        Raises:
            RetrievalFailure: On any non-success page; no partial result is returned
        """
        raw_metrics: Dict[str, list] = {}
        raw_contracts: List[dict] = []
        offset = 0

        while True:
            data = self._get_page(user_id, offset)
            metrics_by_contract = data.get("metricsByContract") or {}
            contracts = data.get("contracts") or []

            if not contracts:
                break

            raw_metrics.update(metrics_by_contract)
            raw_contracts.extend(contracts)

            logger.debug("Fetched positions page", extra={
                "event_type": EventType.FETCH_PAGE,
                "user_id": user_id,
                "offset": offset,
                "contracts": len(contracts),
            })
            if on_progress:
                on_progress(f"Fetched {len(raw_contracts)} markets...")

            if len(contracts) < self.page_size:
                break

            offset += self.page_size

        positions = UserPositions(
            holdings_by_market={
                market_id: [parse_holding(market_id, m) for m in metrics or []]
                for market_id, metrics in raw_metrics.items()
            },
            markets=[parse_market(c) for c in raw_contracts],
        )

        logger.info("Fetched positions", extra={
            "event_type": EventType.FETCH_COMPLETE,
            "user_id": user_id,
            "markets": len(positions.markets),
            "holdings": sum(len(h) for h in positions.holdings_by_market.values()),
        })
        return positions
