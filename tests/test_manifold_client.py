# =============================================================================
# UNIT TESTS - MANIFOLD CLIENT
# =============================================================================
#
# Pagination, error mapping and response parsing, against a mocked session.
#
# =============================================================================

import pytest
import requests

from conftest import mock_response
from margin_watch.manifold_client import (
    LookupFailure,
    ManifoldAPIError,
    ManifoldClient,
    RetrievalFailure,
    parse_answer,
    parse_holding,
    parse_market,
)
from margin_watch.models import Mechanism, Outcome, Pool


def contract(contract_id: str, **fields) -> dict:
    data = {
        "id": contract_id,
        "mechanism": "cpmm-1",
        "isResolved": False,
        "p": 0.5,
        "prob": 0.4,
        "pool": {"YES": 60, "NO": 40},
        "closeTime": 1_800_000_000_000,
        "question": f"Question {contract_id}?",
        "slug": f"question-{contract_id}",
        "creatorUsername": "bob",
    }
    data.update(fields)
    return data


def page(contract_ids, shares=None) -> dict:
    return {
        "metricsByContract": {
            cid: [{"contractId": cid, "totalShares": shares or {"YES": 10}}]
            for cid in contract_ids
        },
        "contracts": [contract(cid) for cid in contract_ids],
    }


class TestParsing:
    """Tests for mapping API payloads onto the data model."""

    def test_parse_single_outcome_market(self):
        market = parse_market(contract("c1"))
        assert market.id == "c1"
        assert market.mechanism is Mechanism.SINGLE_OUTCOME_AMM
        assert market.weight == 0.5
        assert market.probability == 0.4
        assert market.pool == Pool(60.0, 40.0)
        assert market.close_time == 1_800_000_000_000
        assert market.url == "https://manifold.markets/bob/question-c1"

    def test_parse_defaults(self):
        market = parse_market({"id": "bare"})
        assert market.mechanism is Mechanism.OTHER
        assert market.weight == 0.5
        assert market.close_time is None
        assert market.probability is None
        assert market.pool == Pool()
        assert market.question == "Unknown"
        assert market.url == ""

    def test_zero_weight_uses_default(self):
        assert parse_market(contract("c1", p=0)).weight == 0.5

    def test_unknown_mechanism(self):
        assert parse_market(contract("c1", mechanism="dpm-2")).mechanism is Mechanism.OTHER

    def test_parse_multi_outcome_market(self):
        raw = contract("c2", mechanism="cpmm-multi-1", prob=None, pool=None, answers=[
            {"id": "a1", "prob": 0.2, "poolYes": 80, "poolNo": 20, "text": "First"},
            {"id": "a2", "prob": 0.7, "poolYes": 30, "poolNo": 70, "resolution": "YES"},
        ])
        market = parse_market(raw)
        assert market.mechanism is Mechanism.MULTI_OUTCOME_AMM
        assert market.probability is None
        assert [a.id for a in market.answers] == ["a1", "a2"]
        assert market.find_answer("a1").pool == Pool(80.0, 20.0)
        assert market.find_answer("a1").text == "First"
        assert not market.find_answer("a1").is_resolved
        assert market.find_answer("a2").is_resolved

    def test_answer_without_probability(self):
        assert parse_answer({"id": "a", "poolYes": 1, "poolNo": 2}).probability is None

    def test_parse_holding(self):
        holding = parse_holding("c1", {"answerId": "a1", "totalShares": {"YES": 2.5, "NO": 7}})
        assert holding.market_id == "c1"
        assert holding.answer_id == "a1"
        assert holding.outcome is Outcome.NO
        assert holding.shares == 7.0

    def test_parse_holding_without_shares(self):
        holding = parse_holding("c1", {})
        assert holding.is_empty


class TestGetUserId:
    """Tests for username lookup."""

    def test_success(self, session):
        session.get.return_value = mock_response(200, {"id": "user-123", "username": "alice"})
        client = ManifoldClient(api_base="https://api.test/v0", session=session)

        assert client.get_user_id("alice") == "user-123"
        url = session.get.call_args[0][0]
        assert url == "https://api.test/v0/user/alice"

    def test_not_found(self, session):
        session.get.return_value = mock_response(404, {"message": "User not found"})
        client = ManifoldClient(session=session)

        with pytest.raises(LookupFailure) as exc_info:
            client.get_user_id("ghost")
        assert str(exc_info.value) == 'User "ghost" not found'
        assert exc_info.value.status_code == 404

    def test_transport_error(self, session):
        session.get.side_effect = requests.ConnectionError("boom")
        client = ManifoldClient(session=session)

        with pytest.raises(RetrievalFailure):
            client.get_user_id("alice")

    def test_unreadable_body(self, session):
        response = mock_response(200)
        response.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
        session.get.return_value = response
        client = ManifoldClient(session=session)

        with pytest.raises(LookupFailure) as exc_info:
            client.get_user_id("alice")
        assert exc_info.value.status_code == 200


class TestGetUserPositions:
    """Tests for paginated position retrieval."""

    def test_single_short_page(self, session):
        session.get.return_value = mock_response(200, page(["c1", "c2"]))
        client = ManifoldClient(page_size=100, session=session)

        positions = client.get_user_positions("u1")

        assert session.get.call_count == 1
        params = session.get.call_args[1]["params"]
        assert params == {"userId": "u1", "limit": 100, "offset": 0, "perAnswer": "true"}
        assert [m.id for m in positions.markets] == ["c1", "c2"]
        assert positions.holdings_by_market["c1"][0].yes_shares == 10.0

    def test_follows_pages_until_short_page(self, session):
        session.get.side_effect = [
            mock_response(200, page(["c1", "c2"])),
            mock_response(200, page(["c3", "c4"])),
            mock_response(200, page(["c5"])),
        ]
        client = ManifoldClient(page_size=2, session=session)
        progress = []

        positions = client.get_user_positions("u1", on_progress=progress.append)

        offsets = [call[1]["params"]["offset"] for call in session.get.call_args_list]
        assert offsets == [0, 2, 4]
        assert [m.id for m in positions.markets] == ["c1", "c2", "c3", "c4", "c5"]
        assert set(positions.holdings_by_market) == {"c1", "c2", "c3", "c4", "c5"}
        assert progress == ["Fetched 2 markets...", "Fetched 4 markets...", "Fetched 5 markets..."]

    def test_stops_on_empty_page(self, session):
        session.get.side_effect = [
            mock_response(200, page(["c1", "c2"])),
            mock_response(200, {"metricsByContract": {}, "contracts": []}),
        ]
        client = ManifoldClient(page_size=2, session=session)

        positions = client.get_user_positions("u1")

        assert session.get.call_count == 2
        assert len(positions.markets) == 2

    def test_no_positions(self, session):
        session.get.return_value = mock_response(200, {})
        client = ManifoldClient(session=session)

        positions = client.get_user_positions("u1")

        assert positions.markets == []
        assert positions.holdings_by_market == {}

    def test_error_aborts_without_partial_result(self, session):
        session.get.side_effect = [
            mock_response(200, page(["c1", "c2"])),
            mock_response(503),
        ]
        client = ManifoldClient(page_size=2, session=session)

        with pytest.raises(RetrievalFailure) as exc_info:
            client.get_user_positions("u1")
        assert exc_info.value.status_code == 503
        assert str(exc_info.value) == "Error fetching positions: 503"

    def test_transport_error(self, session):
        session.get.side_effect = requests.Timeout("slow")
        client = ManifoldClient(session=session)

        with pytest.raises(RetrievalFailure) as exc_info:
            client.get_user_positions("u1")
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value, ManifoldAPIError)

    def test_unreadable_page(self, session):
        response = mock_response(200)
        response.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
        session.get.return_value = response
        client = ManifoldClient(session=session)

        with pytest.raises(RetrievalFailure) as exc_info:
            client.get_user_positions("u1")
        assert str(exc_info.value) == "Error fetching positions: unreadable response"
        assert exc_info.value.status_code == 200
