"""Storage boundary: the read/write contract the engine needs, plus an in-memory backend."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any

from adoption.errors import ConcurrencyConflictError, InvalidTransitionError, NotFoundError
from adoption.models import (
    TERMINAL_STATUSES,
    Achievement,
    ActivityEvent,
    Level,
    PointAward,
    RecommendationEntry,
    RecommendationStatus,
    Tool,
    UserAchievement,
    UserProfile,
    UserStats,
)

logger = logging.getLogger(__name__)

# Counters that may be moved with :meth:`EngagementStore.increment_stats`
_COUNTER_FIELDS = frozenset(
    {
        "tools_implemented",
        "modules_completed",
        "guides_completed",
        "achievements_earned",
        "total_time_invested_minutes",
    }
)


class EngagementStore(ABC):
    """Abstract storage boundary used by every engine component.

    Implementations must make each method atomic with respect to the
    stored value: counters are incremented in place, never written back
    from a stale read.
    """

    # -- profiles ---------------------------------------------------------

    @abstractmethod
    def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the profile for *user_id*, or ``None`` if not onboarded."""

    @abstractmethod
    def save_profile(self, profile: UserProfile) -> None:
        """Create or replace a user profile."""

    @abstractmethod
    def profiled_user_ids(self) -> list[str]:
        """Return the ids of every user with a profile."""

    # -- catalogue --------------------------------------------------------

    @abstractmethod
    def active_tools(self) -> list[Tool]:
        """Return every catalogue tool whose status is ``active``."""

    @abstractmethod
    def achievement_catalog(self) -> list[Achievement]:
        """Return the static achievement catalogue."""

    @abstractmethod
    def level_catalog(self) -> list[Level]:
        """Return the level catalogue ordered by ascending ``points_required``."""

    # -- recommendations --------------------------------------------------

    @abstractmethod
    def existing_recommendations(self, user_id: str) -> list[RecommendationEntry]:
        """Return every recommendation entry for *user_id*, in any status."""

    @abstractmethod
    def get_recommendation(self, user_id: str, tool_id: str) -> RecommendationEntry | None:
        """Return the entry for ``(user_id, tool_id)``, or ``None``."""

    @abstractmethod
    def upsert_recommendation(self, entry: RecommendationEntry) -> None:
        """Insert or replace the entry keyed by ``(user_id, tool_id)``."""

    @abstractmethod
    def transition_recommendation(
        self,
        user_id: str,
        tool_id: str,
        target: RecommendationStatus,
        allowed_from: frozenset[RecommendationStatus],
        updated_at: datetime,
        default: RecommendationEntry | None = None,
    ) -> RecommendationEntry:
        """Atomically move an entry to *target*, checking its stored status.

        An entry already in *target* is returned unchanged.  A missing entry
        is created from *default* (whose status must be *target*).

        Raises:
            NotFoundError: If there is no entry and no *default*.
            InvalidTransitionError: If the stored status is not in
                *allowed_from*.  The entry is left as it is.
        """

    @abstractmethod
    def replace_active_recommendations(
        self, user_id: str, entries: list[RecommendationEntry]
    ) -> list[RecommendationEntry]:
        """Atomically make *entries* the user's active set.

        Previously active entries not present in *entries* become
        ``superseded``.  Entries in a terminal status are never touched:
        a candidate whose stored entry became terminal since it was read is
        skipped.

        Returns:
            The entries actually written, in the order given.
        """

    # -- activity log -----------------------------------------------------

    @abstractmethod
    def append_event(self, event: ActivityEvent) -> None:
        """Append *event* to the activity log."""

    @abstractmethod
    def events_for(self, user_id: str) -> list[ActivityEvent]:
        """Return the user's activity log in append order."""

    @abstractmethod
    def claim_event_key(self, user_id: str, key: tuple[str, ...]) -> bool:
        """Insert-if-absent for an event's dedup key.

        Returns:
            ``True`` if the key was new (the event should be counted),
            ``False`` if it had already been claimed.
        """

    # -- stats ------------------------------------------------------------

    @abstractmethod
    def get_or_create_stats(self, user_id: str) -> UserStats:
        """Return a snapshot of the user's stats, creating an empty row if needed."""

    @abstractmethod
    def increment_stats(self, user_id: str, **deltas: int) -> UserStats:
        """Atomically add non-negative *deltas* to counter fields."""

    @abstractmethod
    def add_points(self, user_id: str, amount: int) -> UserStats:
        """Atomically add *amount* (may be negative) to points, flooring at 0."""

    @abstractmethod
    def compare_and_set_stats(
        self, user_id: str, expected_version: int, **changes: Any
    ) -> UserStats:
        """Write *changes* only if the stored version equals *expected_version*.

        Raises:
            ConcurrencyConflictError: If another writer got there first.
        """

    @abstractmethod
    def reset_stats(self, user_id: str) -> None:
        """Drop the user's derived stats and claimed dedup keys (for replay)."""

    # -- points audit -----------------------------------------------------

    @abstractmethod
    def append_point_award(self, award: PointAward) -> None:
        """Append an audit row for a point award."""

    @abstractmethod
    def point_awards_for(self, user_id: str) -> list[PointAward]:
        """Return the user's point-award audit log in append order."""

    # -- achievements -----------------------------------------------------

    @abstractmethod
    def user_achievements(self, user_id: str) -> list[UserAchievement]:
        """Return achievements already earned by *user_id*."""

    @abstractmethod
    def insert_user_achievement(self, earned: UserAchievement) -> bool:
        """Insert-if-absent keyed by ``(user_id, achievement_id)``.

        Returns:
            ``True`` if a row was created, ``False`` if it already existed.
        """


class InMemoryStore(EngagementStore):
    """Thread-safe in-memory implementation of :class:`EngagementStore`.

    All mutations run under a single re-entrant lock, which makes every
    increment, upsert and insert-if-absent atomic.  Snapshots handed to
    callers are copies, so mutating them never changes stored state.

    Args:
        tools: Initial catalogue records.
        levels: Level catalogue.
        achievements: Achievement catalogue.
    """

    def __init__(
        self,
        tools: list[Tool] | None = None,
        levels: list[Level] | None = None,
        achievements: list[Achievement] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._tools: dict[str, Tool] = {t.tool_id: t for t in tools or []}
        self._levels: list[Level] = sorted(levels or [], key=lambda lv: lv.points_required)
        self._achievements: list[Achievement] = list(achievements or [])
        self._profiles: dict[str, UserProfile] = {}
        self._recommendations: dict[tuple[str, str], RecommendationEntry] = {}
        self._events: dict[str, list[ActivityEvent]] = {}
        self._claimed_keys: dict[str, set[tuple[str, ...]]] = {}
        self._stats: dict[str, UserStats] = {}
        self._point_awards: dict[str, list[PointAward]] = {}
        self._user_achievements: dict[tuple[str, str], UserAchievement] = {}

    # ------------------------------------------------------------------
    # Catalogue administration (outside the engine contract)
    # ------------------------------------------------------------------

    def put_tool(self, tool: Tool) -> None:
        with self._lock:
            self._tools[tool.tool_id] = tool

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> UserProfile | None:
        with self._lock:
            profile = self._profiles.get(user_id)
            return replace(profile, goals=list(profile.goals)) if profile else None

    def save_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = replace(profile, goals=list(profile.goals))

    def profiled_user_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._profiles)

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def active_tools(self) -> list[Tool]:
        with self._lock:
            return [t for t in self._tools.values() if t.status == "active"]

    def achievement_catalog(self) -> list[Achievement]:
        with self._lock:
            return list(self._achievements)

    def level_catalog(self) -> list[Level]:
        with self._lock:
            return list(self._levels)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def existing_recommendations(self, user_id: str) -> list[RecommendationEntry]:
        with self._lock:
            return [
                replace(entry)
                for (uid, _), entry in self._recommendations.items()
                if uid == user_id
            ]

    def get_recommendation(self, user_id: str, tool_id: str) -> RecommendationEntry | None:
        with self._lock:
            entry = self._recommendations.get((user_id, tool_id))
            return replace(entry) if entry else None

    def upsert_recommendation(self, entry: RecommendationEntry) -> None:
        with self._lock:
            self._recommendations[entry.key] = replace(entry)

    def transition_recommendation(
        self,
        user_id: str,
        tool_id: str,
        target: RecommendationStatus,
        allowed_from: frozenset[RecommendationStatus],
        updated_at: datetime,
        default: RecommendationEntry | None = None,
    ) -> RecommendationEntry:
        key = (user_id, tool_id)
        with self._lock:
            existing = self._recommendations.get(key)
            if existing is None:
                if default is None:
                    raise NotFoundError(
                        f"No recommendation of tool {tool_id!r} for user {user_id!r}"
                    )
                entry = replace(default, status=target, updated_at=updated_at)
            elif existing.status == target:
                return replace(existing)
            elif existing.status not in allowed_from:
                raise InvalidTransitionError(tool_id, existing.status.value, target.value)
            else:
                entry = replace(existing, status=target, updated_at=updated_at)
            self._recommendations[key] = entry
            return replace(entry)

    def replace_active_recommendations(
        self, user_id: str, entries: list[RecommendationEntry]
    ) -> list[RecommendationEntry]:
        with self._lock:
            written: list[RecommendationEntry] = []
            for entry in entries:
                existing = self._recommendations.get(entry.key)
                if existing is not None and existing.status in TERMINAL_STATUSES:
                    logger.info(
                        "Skipping tool %r for user %r: entry became %s during the cycle.",
                        entry.tool_id,
                        user_id,
                        existing.status.value,
                    )
                    continue
                written.append(entry)
            new_keys = {e.key for e in written}
            superseded = 0
            for key, existing in self._recommendations.items():
                if (
                    key[0] == user_id
                    and key not in new_keys
                    and existing.status == RecommendationStatus.ACTIVE
                ):
                    existing.status = RecommendationStatus.SUPERSEDED
                    superseded += 1
            for entry in written:
                self._recommendations[entry.key] = replace(entry)
        logger.debug(
            "Active set for user %r replaced: %d active, %d superseded.",
            user_id,
            len(written),
            superseded,
        )
        return [replace(entry) for entry in written]

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def append_event(self, event: ActivityEvent) -> None:
        with self._lock:
            self._events.setdefault(event.user_id, []).append(event)

    def events_for(self, user_id: str) -> list[ActivityEvent]:
        with self._lock:
            return list(self._events.get(user_id, []))

    def claim_event_key(self, user_id: str, key: tuple[str, ...]) -> bool:
        with self._lock:
            claimed = self._claimed_keys.setdefault(user_id, set())
            if key in claimed:
                return False
            claimed.add(key)
            return True

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_or_create_stats(self, user_id: str) -> UserStats:
        with self._lock:
            return replace(self._stats_row(user_id))

    def increment_stats(self, user_id: str, **deltas: int) -> UserStats:
        for name, delta in deltas.items():
            if name not in _COUNTER_FIELDS:
                raise ValueError(f"{name!r} is not an incrementable counter")
            if delta < 0:
                raise ValueError(f"Counters never decrease; got {name}={delta!r}")
        with self._lock:
            row = self._stats_row(user_id)
            for name, delta in deltas.items():
                setattr(row, name, getattr(row, name) + delta)
            row.version += 1
            return replace(row)

    def add_points(self, user_id: str, amount: int) -> UserStats:
        with self._lock:
            row = self._stats_row(user_id)
            row.total_points = max(0, row.total_points + amount)
            row.version += 1
            return replace(row)

    def compare_and_set_stats(
        self, user_id: str, expected_version: int, **changes: Any
    ) -> UserStats:
        with self._lock:
            row = self._stats_row(user_id)
            if row.version != expected_version:
                raise ConcurrencyConflictError(
                    f"Stats for user {user_id!r} at version {row.version}, "
                    f"expected {expected_version}"
                )
            for name, value in changes.items():
                if not hasattr(row, name) or name in ("user_id", "version"):
                    raise ValueError(f"Cannot set stats field {name!r}")
                setattr(row, name, value)
            row.version += 1
            return replace(row)

    def reset_stats(self, user_id: str) -> None:
        with self._lock:
            self._stats.pop(user_id, None)
            self._claimed_keys.pop(user_id, None)

    # ------------------------------------------------------------------
    # Points audit
    # ------------------------------------------------------------------

    def append_point_award(self, award: PointAward) -> None:
        with self._lock:
            self._point_awards.setdefault(award.user_id, []).append(award)

    def point_awards_for(self, user_id: str) -> list[PointAward]:
        with self._lock:
            return list(self._point_awards.get(user_id, []))

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    def user_achievements(self, user_id: str) -> list[UserAchievement]:
        with self._lock:
            return [ua for (uid, _), ua in self._user_achievements.items() if uid == user_id]

    def insert_user_achievement(self, earned: UserAchievement) -> bool:
        key = (earned.user_id, earned.achievement_id)
        with self._lock:
            if key in self._user_achievements:
                return False
            self._user_achievements[key] = earned
            return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stats_row(self, user_id: str) -> UserStats:
        """Return the live stats row, creating it lazily. Caller holds the lock."""
        row = self._stats.get(user_id)
        if row is None:
            row = UserStats(user_id=user_id)
            self._stats[user_id] = row
        return row
