"""gRPC servicer: the entry point for all inbound calls from dashboard clients.

Requests and responses are ``google.protobuf.Struct`` messages, so clients
need no generated stubs; any gRPC client can call
``/adoption.AdoptionService/<Method>`` with a serialised Struct.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable

import grpc
from google.protobuf import json_format, struct_pb2

from adoption.achievements import rarity_label
from adoption.errors import InvalidTransitionError, NotFoundError
from adoption.ledger import ProgressionLedger, ProgressSnapshot
from adoption.models import ActivityEvent, EventType, RecommendationEntry, UserStats
from adoption.recommendations import RecommendationSetManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "adoption.AdoptionService"

RPC_METHODS = (
    "GenerateRecommendations",
    "GetRecommendations",
    "RecordFeedback",
    "RecordActivity",
    "AwardPoints",
    "GetProgress",
)

_GENERATION_WARN_THRESHOLD_MS = 450


class AdoptionServicer:
    """Implements ``adoption.AdoptionService``.

    Registered with the gRPC server through :func:`build_handler`.  Every
    method validates ``user_id``, delegates to the engine and maps engine
    errors to gRPC status codes; no exception escapes to the client.

    Args:
        manager: The :class:`~adoption.recommendations.RecommendationSetManager`.
        ledger: The :class:`~adoption.ledger.ProgressionLedger`.
    """

    def __init__(self, manager: RecommendationSetManager, ledger: ProgressionLedger) -> None:
        self._manager = manager
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def GenerateRecommendations(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Run a recommendation cycle. Fields: ``user_id``, optional ``limit``."""
        params = _struct_to_dict(request)
        user_id = _require_user_id(params, context)
        if user_id is None:
            return struct_pb2.Struct()

        start_ms = time.monotonic() * 1000
        try:
            limit = params.get("limit")
            return self._call(
                context,
                "generating recommendations",
                lambda: {
                    "recommendations": [
                        _entry_to_dict(e)
                        for e in self._manager.generate(
                            user_id, int(limit) if limit is not None else None
                        )
                    ]
                },
            )
        finally:
            elapsed_ms = time.monotonic() * 1000 - start_ms
            if elapsed_ms > _GENERATION_WARN_THRESHOLD_MS:
                logger.warning(
                    "GenerateRecommendations for user=%r took %.1fms", user_id, elapsed_ms
                )
            else:
                logger.debug("GenerateRecommendations for user=%r took %.1fms", user_id, elapsed_ms)

    def GetRecommendations(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Return the current active set. Fields: ``user_id``."""
        params = _struct_to_dict(request)
        user_id = _require_user_id(params, context)
        if user_id is None:
            return struct_pb2.Struct()
        return self._call(
            context,
            "reading recommendations",
            lambda: {
                "recommendations": [
                    _entry_to_dict(e) for e in self._manager.active_recommendations(user_id)
                ]
            },
        )

    def RecordFeedback(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Apply feedback. Fields: ``user_id``, ``tool_id``, ``action``."""
        params = _struct_to_dict(request)
        user_id = _require_user_id(params, context)
        if user_id is None:
            return struct_pb2.Struct()
        tool_id = params.get("tool_id") or ""
        if not tool_id:
            _invalid(context, "tool_id must be non-empty")
            return struct_pb2.Struct()

        def run() -> dict[str, Any]:
            entry = self._manager.record_feedback(user_id, tool_id, params.get("action", ""))
            return {"recommendation": _entry_to_dict(entry)} if entry else {}

        return self._call(context, "recording feedback", run)

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    def RecordActivity(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Append and apply one activity event.

        Fields: ``user_id``, ``event_type``, optional ``tool_id``,
        ``timestamp`` (ISO 8601, defaults to now), ``metadata``, ``event_id``.
        """
        params = _struct_to_dict(request)
        user_id = _require_user_id(params, context)
        if user_id is None:
            return struct_pb2.Struct()

        def run() -> dict[str, Any]:
            metadata = dict(params.get("metadata") or {})
            if "duration_minutes" in metadata:
                metadata["duration_minutes"] = int(metadata["duration_minutes"])
            event = ActivityEvent(
                user_id=user_id,
                event_type=EventType(params.get("event_type", "")),
                timestamp=_parse_timestamp(params.get("timestamp")),
                tool_id=params.get("tool_id") or None,
                metadata=metadata,
                event_id=params.get("event_id") or None,
            )
            return {"stats": _stats_to_dict(self._ledger.record_activity(event))}

        return self._call(context, "recording activity", run)

    def AwardPoints(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Award or deduct points. Fields: ``user_id``, ``amount``, ``reason``."""
        params = _struct_to_dict(request)
        user_id = _require_user_id(params, context)
        if user_id is None:
            return struct_pb2.Struct()
        return self._call(
            context,
            "awarding points",
            lambda: {
                "stats": _stats_to_dict(
                    self._ledger.award_points(
                        user_id, int(params.get("amount", 0)), params.get("reason", "")
                    )
                )
            },
        )

    def GetProgress(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Return stats, level and achievement progress. Fields: ``user_id``."""
        params = _struct_to_dict(request)
        user_id = _require_user_id(params, context)
        if user_id is None:
            return struct_pb2.Struct()
        return self._call(
            context,
            "reading progress",
            lambda: _snapshot_to_dict(self._ledger.progress_snapshot(user_id)),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _call(
        context: Any, action: str, fn: Callable[[], dict[str, Any]]
    ) -> struct_pb2.Struct:
        """Run *fn* and convert its result, mapping failures to status codes."""
        try:
            return _dict_to_struct(fn())
        except (ValueError, KeyError) as exc:
            _invalid(context, str(exc))
        except InvalidTransitionError as exc:
            context.set_code(grpc.StatusCode.FAILED_PRECONDITION)
            context.set_details(str(exc))
        except NotFoundError as exc:
            context.set_code(grpc.StatusCode.NOT_FOUND)
            context.set_details(str(exc))
        except Exception:
            logger.exception("Unexpected error %s.", action)
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details(f"Internal error {action}.")
        return struct_pb2.Struct()


def build_handler(servicer: AdoptionServicer) -> grpc.GenericRpcHandler:
    """Wrap *servicer* in a generic handler using Struct (de)serialisers."""
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            getattr(servicer, name),
            request_deserializer=struct_pb2.Struct.FromString,
            response_serializer=struct_pb2.Struct.SerializeToString,
        )
        for name in RPC_METHODS
    }
    return grpc.method_handlers_generic_handler(SERVICE_NAME, handlers)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------


def _require_user_id(params: dict[str, Any], context: Any) -> str | None:
    user_id = params.get("user_id") or ""
    if not user_id:
        _invalid(context, "user_id must be non-empty")
        return None
    return str(user_id)


def _invalid(context: Any, details: str) -> None:
    context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
    context.set_details(details)


def _struct_to_dict(message: struct_pb2.Struct) -> dict[str, Any]:
    return json_format.MessageToDict(message)


def _dict_to_struct(data: dict[str, Any]) -> struct_pb2.Struct:
    message = struct_pb2.Struct()
    json_format.ParseDict(data, message)
    return message


def _parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC, missing means now."""
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _entry_to_dict(entry: RecommendationEntry) -> dict[str, Any]:
    data: dict[str, Any] = {
        "tool_id": entry.tool_id,
        "score": entry.score,
        "reason": entry.reason,
        "priority": entry.priority.value,
        "status": entry.status.value,
    }
    if entry.generated_at is not None:
        data["generated_at"] = _iso(entry.generated_at)
    if entry.rationale:
        data["rationale"] = entry.rationale
    return data


def _stats_to_dict(stats: UserStats) -> dict[str, Any]:
    data: dict[str, Any] = {
        "total_points": stats.total_points,
        "streak_days": stats.streak_days,
        "tools_implemented": stats.tools_implemented,
        "modules_completed": stats.modules_completed,
        "guides_completed": stats.guides_completed,
        "achievements_earned": stats.achievements_earned,
        "total_time_invested_minutes": stats.total_time_invested_minutes,
        "level_title": stats.level_title,
    }
    if stats.last_activity_date is not None:
        data["last_activity_date"] = _iso(stats.last_activity_date)
    return data


def _snapshot_to_dict(snapshot: ProgressSnapshot) -> dict[str, Any]:
    data: dict[str, Any] = {
        "stats": _stats_to_dict(snapshot.stats),
        "current_level": {
            "level_number": snapshot.current_level.level_number,
            "title": snapshot.current_level.title,
            "points_required": snapshot.current_level.points_required,
        },
        "level_progress": snapshot.level_progress,
        "earned": [
            {
                "achievement_id": achievement.achievement_id,
                "name": achievement.name,
                "points": achievement.points,
                "rarity": achievement.rarity.value,
                "rarity_label": rarity_label(achievement.rarity),
                "earned_at": _iso(row.earned_at),
            }
            for achievement, row in snapshot.earned
        ],
        "pending": [
            {
                "achievement_id": achievement.achievement_id,
                "name": achievement.name,
                "points": achievement.points,
                "rarity": achievement.rarity.value,
                "rarity_label": rarity_label(achievement.rarity),
                "progress": progress,
            }
            for achievement, progress in snapshot.pending
        ],
    }
    if snapshot.next_level is not None:
        data["next_level"] = {
            "level_number": snapshot.next_level.level_number,
            "title": snapshot.next_level.title,
            "points_required": snapshot.next_level.points_required,
        }
    return data
