"""Recommendation set manager: ranks the catalogue per user and reconciles feedback."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable

from adoption.advisory import AdvisoryClient
from adoption.catalogue import ToolCatalogue
from adoption.errors import AdvisoryFailureError
from adoption.ledger import ProgressionLedger
from adoption.models import (
    TERMINAL_STATUSES,
    ActivityEvent,
    ActivitySummary,
    EventType,
    FeedbackAction,
    RecommendationEntry,
    RecommendationStatus,
    ScoreResult,
    Tool,
    UserProfile,
)
from adoption.scoring import ScoringEngine, industry_matches
from adoption.store import EngagementStore

logger = logging.getLogger(__name__)

_DEFAULT_LIMIT = 6

# Activity logged for each feedback action
_FEEDBACK_EVENTS = {
    FeedbackAction.INTERESTED: EventType.VIEWED,
    FeedbackAction.DISMISSED: EventType.DISMISSED,
    FeedbackAction.IMPLEMENTING: EventType.IMPLEMENTED,
}

_FEEDBACK_STATUS = {
    FeedbackAction.DISMISSED: RecommendationStatus.DISMISSED,
    FeedbackAction.IMPLEMENTING: RecommendationStatus.IMPLEMENTED,
}

# Statuses a dismiss or implement may move out of
_FEEDBACK_SOURCES = frozenset({RecommendationStatus.ACTIVE, RecommendationStatus.SUPERSEDED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _excluded_tool_ids(
    existing: dict[str, RecommendationEntry], summary: ActivitySummary
) -> set[str]:
    """Tools a cycle must not surface.

    * any tool whose entry is ``dismissed`` or ``implemented``
    * any tool with an ``implemented`` event in the activity log
    * any tool with a ``dismissed`` event in the log and no entry (an entry,
      if present, is authoritative so :meth:`RecommendationSetManager.reset_dismissed`
      can make the tool eligible again)
    """
    excluded = {tool_id for tool_id, e in existing.items() if e.status in TERMINAL_STATUSES}
    excluded |= summary.implemented_tool_ids
    excluded |= {t for t in summary.dismissed_tool_ids if t not in existing}
    return excluded


def rank(
    scored: list[tuple[Tool, ScoreResult]],
    profile: UserProfile | None = None,
    summary: ActivitySummary | None = None,
) -> list[tuple[Tool, ScoreResult]]:
    """Order scored tools best-first.

    Score descending, then tools targeting the user's industry, then tools
    the user has already looked at, then popularity descending, then name
    and id ascending so that the order is fully deterministic.  The score
    itself is never adjusted.
    """
    viewed = summary.viewed_tool_ids if summary is not None else set()

    def key(pair: tuple[Tool, ScoreResult]) -> tuple:
        tool, result = pair
        return (
            -result.value,
            not (profile is not None and industry_matches(profile.industry, tool.target_industries)),
            tool.tool_id not in viewed,
            -tool.popularity_score,
            tool.name,
            tool.tool_id,
        )

    return sorted(scored, key=key)


class RecommendationSetManager:
    """Produces, persists and reconciles each user's ranked recommendation set.

    Every generation cycle replaces the user's full active set.  Active
    entries that the new cycle does not re-produce become ``superseded``;
    ``dismissed`` and ``implemented`` entries are never touched and their
    tools are excluded from every later cycle for that user.

    Args:
        store: The storage boundary.
        catalogue: Cached active tool catalogue.
        scorer: The scoring heuristic.
        ledger: Progression ledger that receives feedback activity.
        advisory: Optional advisory client for natural-language rationale.
        clock: Returns the current UTC time.
        default_limit: Set size when the caller does not pass a limit.
    """

    def __init__(
        self,
        store: EngagementStore,
        catalogue: ToolCatalogue,
        scorer: ScoringEngine,
        ledger: ProgressionLedger,
        advisory: AdvisoryClient | None = None,
        clock: Callable[[], datetime] = _utcnow,
        default_limit: int = _DEFAULT_LIMIT,
    ) -> None:
        self._store = store
        self._catalogue = catalogue
        self._scorer = scorer
        self._ledger = ledger
        self._advisory = advisory
        self._clock = clock
        self._default_limit = default_limit
        self._refresh_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, user_id: str, limit: int | None = None) -> list[RecommendationEntry]:
        """Run one recommendation cycle for *user_id* and persist the result.

        Args:
            user_id: The user to recommend for. Must be non-empty.
            limit: Maximum set size. Defaults to the manager's default.

        Returns:
            The new active set, best-first.  Empty if the user has no
            profile or every tool has been dismissed or implemented.

        Raises:
            ValueError: If *user_id* is empty or *limit* is negative.
        """
        if not user_id:
            raise ValueError("user_id must be non-empty")
        limit = self._default_limit if limit is None else limit
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit!r}")

        profile = self._store.get_profile(user_id)
        if profile is None:
            logger.info("No profile for user %r; returning no recommendations.", user_id)
            return []

        existing = {e.tool_id: e for e in self._store.existing_recommendations(user_id)}
        summary = ActivitySummary.from_events(self._store.events_for(user_id))
        excluded = _excluded_tool_ids(existing, summary)
        candidates = [t for t in self._catalogue.get_active_tools() if t.tool_id not in excluded]

        scored = [(tool, self._scorer.score(tool, profile)) for tool in candidates]
        top = rank(scored, profile, summary)[:limit]

        now = self._clock()
        entries = [
            RecommendationEntry(
                user_id=user_id,
                tool_id=tool.tool_id,
                score=result.value,
                reason=result.reason,
                status=RecommendationStatus.ACTIVE,
                generated_at=now,
                updated_at=now,
                rationale=self._rationale(tool, profile, result.reason),
            )
            for tool, result in top
        ]
        entries = self._store.replace_active_recommendations(user_id, entries)
        logger.info(
            "Generated %d recommendations for user %r (%d candidates, %d excluded).",
            len(entries),
            user_id,
            len(candidates),
            len(excluded),
        )
        return entries

    def active_recommendations(self, user_id: str) -> list[RecommendationEntry]:
        """Return the user's current active set, best-first."""
        active = [
            e
            for e in self._store.existing_recommendations(user_id)
            if e.status == RecommendationStatus.ACTIVE
        ]
        active.sort(key=lambda e: (-e.score, e.tool_id))
        return active

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def record_feedback(
        self, user_id: str, tool_id: str, action: FeedbackAction | str
    ) -> RecommendationEntry | None:
        """Apply a user's reaction to a recommended tool.

        * ``interested``: logged as a view whatever the entry's status; the
          entry stays as it is.
        * ``dismissed``: the entry becomes ``dismissed`` for good.
        * ``implementing``: the entry becomes ``implemented`` and the
          progression ledger counts the implementation (once per tool).

        Feedback on a tool that was never recommended creates its entry
        directly in the target status so the tool is excluded from later
        cycles.  The status change is a single store transition; activity
        is logged only once it has succeeded.

        Returns:
            The updated entry, or ``None`` for ``interested`` on a tool
            without an entry.

        Raises:
            ValueError: If an id is empty or *action* is not a known
                feedback action.
            InvalidTransitionError: If the entry is already in a terminal
                status other than the requested one.  Its status is kept.
        """
        if not user_id:
            raise ValueError("user_id must be non-empty")
        if not tool_id:
            raise ValueError("tool_id must be non-empty")
        action = FeedbackAction(action)
        target = _FEEDBACK_STATUS.get(action)
        entry = self._store.get_recommendation(user_id, tool_id)

        now = self._clock()
        if target is not None:
            default = self._direct_entry(user_id, tool_id, target, now) if entry is None else None
            entry = self._store.transition_recommendation(
                user_id,
                tool_id,
                target,
                allowed_from=_FEEDBACK_SOURCES,
                updated_at=now,
                default=default,
            )
            logger.info("User %r marked tool %r as %s.", user_id, tool_id, target.value)

        self._ledger.record_activity(
            ActivityEvent(
                user_id=user_id,
                event_type=_FEEDBACK_EVENTS[action],
                timestamp=now,
                tool_id=tool_id,
                metadata={"feedback": action.value},
            )
        )
        return entry

    def reset_dismissed(self, user_id: str, tool_id: str) -> RecommendationEntry:
        """Administrative reset: make a dismissed tool eligible again.

        The entry moves to ``superseded``; the next cycle may re-surface it.

        Raises:
            NotFoundError: If there is no entry for the pair.
            InvalidTransitionError: If the entry is not dismissed.
        """
        entry = self._store.transition_recommendation(
            user_id,
            tool_id,
            RecommendationStatus.SUPERSEDED,
            allowed_from=frozenset({RecommendationStatus.DISMISSED}),
            updated_at=self._clock(),
        )
        logger.info("Reset dismissed tool %r for user %r.", tool_id, user_id)
        return entry

    # ------------------------------------------------------------------
    # Periodic refresh
    # ------------------------------------------------------------------

    def refresh_all(self) -> int:
        """Regenerate the set for every profiled user.

        Returns:
            The number of users refreshed successfully.
        """
        refreshed = 0
        for user_id in self._store.profiled_user_ids():
            try:
                self.generate(user_id)
                refreshed += 1
            except Exception:
                logger.exception("Failed to refresh recommendations for user %r.", user_id)
        logger.info("Refreshed recommendations for %d users.", refreshed)
        return refreshed

    def start_refresh_loop(self, interval_seconds: int) -> None:
        """Start a background daemon thread that calls :meth:`refresh_all`.

        Safe to call multiple times; only one thread is started.
        """
        if self._refresh_thread is not None and self._refresh_thread.is_alive():
            return
        self._refresh_thread = threading.Thread(
            target=self._refresh_loop,
            args=(interval_seconds,),
            name="recommendation-refresh",
            daemon=True,
        )
        self._refresh_thread.start()
        logger.debug("Recommendation refresh loop started (interval=%ds).", interval_seconds)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _rationale(self, tool: Tool, profile: UserProfile, reason: str) -> str | None:
        if self._advisory is None:
            return None
        try:
            return self._advisory.explain(tool, profile, reason)
        except AdvisoryFailureError as exc:
            logger.warning(
                "Advisory rationale unavailable for tool %r, user %r: %s",
                tool.tool_id,
                profile.user_id,
                exc,
            )
            return None

    def _direct_entry(
        self,
        user_id: str,
        tool_id: str,
        status: RecommendationStatus,
        now: datetime,
    ) -> RecommendationEntry:
        tool = self._catalogue.get_tool(tool_id)
        profile = self._store.get_profile(user_id)
        if tool is not None and profile is not None:
            result = self._scorer.score(tool, profile)
            score, reason = result.value, result.reason
        else:
            score, reason = 0, "Added from the tool library"
        return RecommendationEntry(
            user_id=user_id,
            tool_id=tool_id,
            score=score,
            reason=reason,
            status=status,
            generated_at=now,
            updated_at=now,
        )

    def _refresh_loop(self, interval_seconds: int) -> None:
        """Periodically refresh every user's set. Runs in a daemon thread."""
        while True:
            time.sleep(interval_seconds)
            self.refresh_all()
