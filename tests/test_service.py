"""Tests for AdoptionServicer (gRPC service layer)."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import grpc
import pytest
from google.protobuf import json_format, struct_pb2

from adoption.errors import NotFoundError
from adoption.service import (
    RPC_METHODS,
    SERVICE_NAME,
    AdoptionServicer,
    _parse_timestamp,
    build_handler,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _request(**fields) -> struct_pb2.Struct:
    message = struct_pb2.Struct()
    json_format.ParseDict(fields, message)
    return message


def _response(message: struct_pb2.Struct) -> dict:
    return json_format.MessageToDict(message)


def _make_context() -> MagicMock:
    """Return a mock gRPC context."""
    ctx = MagicMock()
    ctx.set_code = MagicMock()
    ctx.set_details = MagicMock()
    return ctx


@pytest.fixture
def servicer(manager, ledger) -> AdoptionServicer:
    return AdoptionServicer(manager=manager, ledger=ledger)


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class TestGenerateRecommendations:
    def test_returns_ranked_set(self, servicer) -> None:
        ctx = _make_context()
        result = _response(servicer.GenerateRecommendations(_request(user_id="u_mgr"), ctx))
        recs = result["recommendations"]
        assert [r["tool_id"] for r in recs] == ["t_quick", "t_freemium", "t_cheap"]
        assert recs[0]["score"] == 100
        assert recs[0]["priority"] == "high"
        assert recs[0]["status"] == "active"
        ctx.set_code.assert_not_called()

    def test_limit(self, servicer) -> None:
        result = _response(
            servicer.GenerateRecommendations(_request(user_id="u_mgr", limit=1), _make_context())
        )
        assert len(result["recommendations"]) == 1

    def test_unknown_user_gets_empty_set(self, servicer) -> None:
        result = _response(
            servicer.GenerateRecommendations(_request(user_id="ghost"), _make_context())
        )
        assert result == {"recommendations": []}

    def test_missing_user_id_is_invalid(self, servicer) -> None:
        ctx = _make_context()
        servicer.GenerateRecommendations(_request(), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)

    def test_negative_limit_is_invalid(self, servicer) -> None:
        ctx = _make_context()
        servicer.GenerateRecommendations(_request(user_id="u_mgr", limit=-2), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)

    def test_unexpected_error_is_internal(self, ledger) -> None:
        manager = MagicMock()
        manager.generate.side_effect = RuntimeError("db error")
        ctx = _make_context()
        result = AdoptionServicer(manager, ledger).GenerateRecommendations(
            _request(user_id="u_mgr"), ctx
        )
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INTERNAL)
        assert isinstance(result, struct_pb2.Struct)


class TestGetRecommendations:
    def test_returns_active_set(self, servicer) -> None:
        servicer.GenerateRecommendations(_request(user_id="u_mgr"), _make_context())
        result = _response(servicer.GetRecommendations(_request(user_id="u_mgr"), _make_context()))
        assert {r["tool_id"] for r in result["recommendations"]} == {
            "t_quick",
            "t_freemium",
            "t_cheap",
        }


class TestRecordFeedback:
    def test_dismiss(self, servicer) -> None:
        servicer.GenerateRecommendations(_request(user_id="u_mgr"), _make_context())
        result = _response(
            servicer.RecordFeedback(
                _request(user_id="u_mgr", tool_id="t_quick", action="dismissed"), _make_context()
            )
        )
        assert result["recommendation"]["status"] == "dismissed"

    def test_invalid_transition_is_failed_precondition(self, servicer) -> None:
        servicer.RecordFeedback(
            _request(user_id="u_mgr", tool_id="t_quick", action="dismissed"), _make_context()
        )
        ctx = _make_context()
        servicer.RecordFeedback(
            _request(user_id="u_mgr", tool_id="t_quick", action="implementing"), ctx
        )
        ctx.set_code.assert_called_once_with(grpc.StatusCode.FAILED_PRECONDITION)

    def test_unknown_action_is_invalid(self, servicer) -> None:
        ctx = _make_context()
        servicer.RecordFeedback(_request(user_id="u_mgr", tool_id="t_quick", action="meh"), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)

    def test_missing_tool_id_is_invalid(self, servicer) -> None:
        ctx = _make_context()
        servicer.RecordFeedback(_request(user_id="u_mgr", action="dismissed"), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)

    def test_not_found_maps_to_not_found(self, ledger) -> None:
        manager = MagicMock()
        manager.record_feedback.side_effect = NotFoundError("gone")
        ctx = _make_context()
        AdoptionServicer(manager, ledger).RecordFeedback(
            _request(user_id="u_mgr", tool_id="t", action="dismissed"), ctx
        )
        ctx.set_code.assert_called_once_with(grpc.StatusCode.NOT_FOUND)


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------


class TestRecordActivity:
    def test_session_minutes(self, servicer) -> None:
        result = _response(
            servicer.RecordActivity(
                _request(
                    user_id="u_mgr",
                    event_type="session",
                    timestamp="2024-06-01T09:00:00+00:00",
                    metadata={"duration_minutes": 30},
                ),
                _make_context(),
            )
        )
        assert result["stats"]["total_time_invested_minutes"] == 30
        assert result["stats"]["streak_days"] == 1
        assert result["stats"]["last_activity_date"] == "2024-06-01"

    def test_unknown_event_type_is_invalid(self, servicer) -> None:
        ctx = _make_context()
        servicer.RecordActivity(_request(user_id="u_mgr", event_type="danced"), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)


class TestAwardPoints:
    def test_award(self, servicer) -> None:
        result = _response(
            servicer.AwardPoints(
                _request(user_id="u_mgr", amount=500, reason="milestone"), _make_context()
            )
        )
        assert result["stats"]["total_points"] == 500
        assert result["stats"]["level_title"] == "AI Specialist"

    def test_missing_reason_is_invalid(self, servicer) -> None:
        ctx = _make_context()
        servicer.AwardPoints(_request(user_id="u_mgr", amount=5), ctx)
        ctx.set_code.assert_called_once_with(grpc.StatusCode.INVALID_ARGUMENT)


class TestGetProgress:
    def test_snapshot(self, servicer) -> None:
        servicer.RecordFeedback(
            _request(user_id="u_mgr", tool_id="t_quick", action="implementing"), _make_context()
        )
        result = _response(servicer.GetProgress(_request(user_id="u_mgr"), _make_context()))
        assert result["stats"]["tools_implemented"] == 1
        assert result["current_level"]["title"] == "AI Novice"
        assert result["next_level"]["points_required"] == 100
        assert [a["achievement_id"] for a in result["earned"]] == ["first_tool"]
        assert result["earned"][0]["rarity_label"] == "Common"
        assert all(0 <= a["progress"] <= 100 for a in result["pending"])


# ---------------------------------------------------------------------------
# Wiring and helpers
# ---------------------------------------------------------------------------


class TestBuildHandler:
    def test_registers_every_method(self, servicer) -> None:
        handler = build_handler(servicer)
        for name in RPC_METHODS:
            details = MagicMock(method=f"/{SERVICE_NAME}/{name}")
            assert handler.service(details) is not None

    def test_unknown_method_not_handled(self, servicer) -> None:
        handler = build_handler(servicer)
        details = MagicMock(method=f"/{SERVICE_NAME}/DropTables")
        assert handler.service(details) is None


class TestParseTimestamp:
    def test_aware(self) -> None:
        parsed = _parse_timestamp("2024-06-01T12:00:00+02:00")
        assert parsed == datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self) -> None:
        parsed = _parse_timestamp("2024-06-01T12:00:00")
        assert parsed.tzinfo == timezone.utc

    def test_missing_is_now(self) -> None:
        before = datetime.now(timezone.utc)
        assert _parse_timestamp(None) >= before

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError):
            _parse_timestamp("yesterday")
