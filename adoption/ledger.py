"""Progression ledger: derives stats, streaks, points and achievements from activity."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from adoption.achievements import AchievementResolver
from adoption.errors import ConcurrencyConflictError
from adoption.levels import LevelResolver
from adoption.models import (
    Achievement,
    ActivityEvent,
    EventType,
    Level,
    PointAward,
    UserAchievement,
    UserStats,
)
from adoption.store import EngagementStore

logger = logging.getLogger(__name__)

_DEFAULT_CAS_RETRIES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_streak(current: int, last_activity: date | None, day: date) -> int | None:
    """Return the streak after activity on *day*, or ``None`` if it should not change.

    * first activity, or a gap of two days or more: 1
    * activity the day after the last one: ``current + 1``
    * another activity on the same day, or a late event for an earlier day: no change
    """
    if last_activity is None:
        return 1
    if day <= last_activity:
        return None
    if day - last_activity == timedelta(days=1):
        return current + 1
    return 1


@dataclass
class ProgressSnapshot:
    """Everything a dashboard needs to render a user's progression."""

    stats: UserStats
    current_level: Level
    next_level: Level | None
    level_progress: float
    earned: list[tuple[Achievement, UserAchievement]] = field(default_factory=list)
    pending: list[tuple[Achievement, float]] = field(default_factory=list)


class ProgressionLedger:
    """Applies activity events to derived :class:`~adoption.models.UserStats`.

    Counter events are idempotent per :meth:`ActivityEvent.dedup_key
    <adoption.models.ActivityEvent.dedup_key>`: the key is claimed with an
    insert-if-absent before anything is counted, so replaying an event is
    a no-op.  Counters move only through the store's atomic increment;
    streak and level-title updates use compare-and-set with bounded
    retries.

    ====================  =========================================
    Event                 Effect
    ====================  =========================================
    ``module_completed``  ``modules_completed += 1``
    ``guide_completed``   ``guides_completed += 1``
    ``implemented``       ``tools_implemented += 1`` (once per tool)
    ``session``           ``total_time_invested_minutes += duration``
    any                   streak update for the event's calendar day
    ====================  =========================================

    Points are never derived from counters; they move only through
    :meth:`award_points`, which also writes an audit row.

    Args:
        store: The storage boundary.
        levels: Level lookup used to keep ``level_title`` current.
        achievements: Achievement catalogue queries.
        clock: Returns the current UTC time.  Injected so tests control it.
        max_retries: Compare-and-set attempts before giving up.
    """

    def __init__(
        self,
        store: EngagementStore,
        levels: LevelResolver,
        achievements: AchievementResolver,
        clock: Callable[[], datetime] = _utcnow,
        max_retries: int = _DEFAULT_CAS_RETRIES,
    ) -> None:
        self._store = store
        self._levels = levels
        self._achievements = achievements
        self._clock = clock
        self._max_retries = max_retries

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def record_activity(self, event: ActivityEvent) -> UserStats:
        """Append *event* to the activity log, then apply it."""
        self._store.append_event(event)
        return self.apply_event(event.user_id, event)

    def apply_event(self, user_id: str, event: ActivityEvent) -> UserStats:
        """Fold one activity event into the user's stats.

        Args:
            user_id: The user whose stats change.  Must match ``event.user_id``.
            event: The activity to apply.

        Returns:
            The stats after the event (unchanged if it was a duplicate).

        Raises:
            ValueError: If the user ids disagree or a session duration is
                negative.
        """
        stats = self._apply(user_id, event)
        if stats is None:
            return self._store.get_or_create_stats(user_id)
        self._unlock_achievements(user_id, stats)
        return self._store.get_or_create_stats(user_id)

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def award_points(self, user_id: str, amount: int, reason: str) -> UserStats:
        """Add *amount* points (negative to deduct) and log the award.

        The balance never drops below zero.

        Raises:
            ValueError: If *reason* is empty.
        """
        if not reason:
            raise ValueError("A point award needs a reason")
        stats = self._store.add_points(user_id, amount)
        self._store.append_point_award(
            PointAward(
                user_id=user_id,
                amount=amount,
                reason=reason,
                awarded_at=self._clock(),
                balance_after=stats.total_points,
            )
        )
        logger.info(
            "Awarded %d points to user %r (%s); balance now %d.",
            amount,
            user_id,
            reason,
            stats.total_points,
        )
        stats = self._refresh_level_title(user_id)
        self._unlock_achievements(user_id, stats)
        return self._store.get_or_create_stats(user_id)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def progress_snapshot(self, user_id: str) -> ProgressSnapshot:
        stats = self._store.get_or_create_stats(user_id)
        current = self._levels.current_level(stats.total_points)
        upcoming = self._levels.next_level(stats.total_points)

        earned: list[tuple[Achievement, UserAchievement]] = []
        for row in sorted(
            self._store.user_achievements(user_id), key=lambda ua: ua.earned_at, reverse=True
        ):
            achievement = self._achievements.get(row.achievement_id)
            if achievement is not None:
                earned.append((achievement, row))
        earned_ids = {ua.achievement_id for _, ua in earned}

        return ProgressSnapshot(
            stats=stats,
            current_level=current,
            next_level=upcoming,
            level_progress=self._levels.level_progress(stats.total_points, current, upcoming),
            earned=earned,
            pending=self._achievements.pending(stats, earned_ids),
        )

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def rebuild(self, user_id: str) -> UserStats:
        """Reconstruct the user's stats from the activity and point-award logs.

        Earned achievements are kept (they are never revoked); any that the
        rebuilt stats newly satisfy are unlocked afterwards.

        Raises:
            ValueError: If a logged event is malformed.  The stored stats
                are left as they were.
        """
        events = self._store.events_for(user_id)
        awards = self._store.point_awards_for(user_id)
        earned = self._store.user_achievements(user_id)

        for event in events:
            self._check_owner(user_id, event)
            self._counter_deltas(event)

        self._store.reset_stats(user_id)
        for event in events:
            self._apply(user_id, event)
        for award in awards:
            self._store.add_points(user_id, award.amount)
        if earned:
            self._store.increment_stats(user_id, achievements_earned=len(earned))

        stats = self._refresh_level_title(user_id)
        logger.info(
            "Rebuilt stats for user %r from %d events and %d point awards.",
            user_id,
            len(events),
            len(awards),
        )
        self._unlock_achievements(user_id, stats)
        return self._store.get_or_create_stats(user_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(self, user_id: str, event: ActivityEvent) -> UserStats | None:
        """Apply counters and streak for *event*; ``None`` if it was a duplicate."""
        self._check_owner(user_id, event)
        deltas = self._counter_deltas(event)

        key = event.dedup_key()
        if key is not None and not self._store.claim_event_key(user_id, key):
            logger.debug("Ignoring duplicate event %r for user %r.", key, user_id)
            return None

        if deltas:
            self._store.increment_stats(user_id, **deltas)
        return self._update_streak(user_id, event.activity_date())

    @staticmethod
    def _check_owner(user_id: str, event: ActivityEvent) -> None:
        if event.user_id != user_id:
            raise ValueError(
                f"Event belongs to user {event.user_id!r}, not {user_id!r}"
            )

    @staticmethod
    def _counter_deltas(event: ActivityEvent) -> dict[str, int]:
        if event.event_type == EventType.MODULE_COMPLETED:
            return {"modules_completed": 1}
        if event.event_type == EventType.GUIDE_COMPLETED:
            return {"guides_completed": 1}
        if event.event_type == EventType.IMPLEMENTED:
            return {"tools_implemented": 1}
        if event.event_type == EventType.SESSION:
            duration = int(event.metadata.get("duration_minutes", 0))
            if duration < 0:
                raise ValueError(f"Session duration must be non-negative, got {duration!r}")
            return {"total_time_invested_minutes": duration} if duration else {}
        return {}

    def _update_streak(self, user_id: str, day: date) -> UserStats:
        def compute(stats: UserStats) -> dict[str, Any] | None:
            streak = next_streak(stats.streak_days, stats.last_activity_date, day)
            if streak is None:
                return None
            return {"streak_days": streak, "last_activity_date": day}

        return self._compare_and_set(user_id, compute)

    def _refresh_level_title(self, user_id: str) -> UserStats:
        def compute(stats: UserStats) -> dict[str, Any] | None:
            title = self._levels.current_level(stats.total_points).title
            if title == stats.level_title:
                return None
            logger.info("User %r reached level %r.", user_id, title)
            return {"level_title": title}

        return self._compare_and_set(user_id, compute)

    def _compare_and_set(
        self,
        user_id: str,
        compute: Callable[[UserStats], dict[str, Any] | None],
    ) -> UserStats:
        """Read, compute and write stats changes, retrying on conflicts.

        *compute* returns the fields to change, or ``None`` to leave the row
        as it is.  After ``max_retries`` lost races the stored stats are
        returned unchanged.
        """
        for attempt in range(self._max_retries + 1):
            stats = self._store.get_or_create_stats(user_id)
            changes = compute(stats)
            if changes is None:
                return stats
            try:
                return self._store.compare_and_set_stats(user_id, stats.version, **changes)
            except ConcurrencyConflictError:
                logger.debug(
                    "Stats write conflict for user %r (attempt %d), retrying.", user_id, attempt + 1
                )
        logger.warning(
            "Giving up on stats update for user %r after %d conflicts.",
            user_id,
            self._max_retries + 1,
        )
        return self._store.get_or_create_stats(user_id)

    def _unlock_achievements(self, user_id: str, stats: UserStats) -> list[Achievement]:
        unlocked: list[Achievement] = []
        for achievement in self._achievements.satisfied(stats):
            earned = UserAchievement(
                user_id=user_id,
                achievement_id=achievement.achievement_id,
                earned_at=self._clock(),
            )
            if not self._store.insert_user_achievement(earned):
                continue
            unlocked.append(achievement)
            logger.info("User %r unlocked achievement %r.", user_id, achievement.achievement_id)
            self._store.increment_stats(user_id, achievements_earned=1)
            if achievement.points:
                self.award_points(
                    user_id, achievement.points, f"achievement:{achievement.achievement_id}"
                )
        return unlocked
