"""Core domain dataclasses shared across all adoption-engine modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Union

# Score thresholds for priority buckets
HIGH_PRIORITY_MIN_SCORE = 80
MEDIUM_PRIORITY_MIN_SCORE = 60


class PricingModel(str, Enum):
    FREE = "free"
    FREEMIUM = "freemium"
    PAID = "paid"


class SetupDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class TimeToValue(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class AIExperience(str, Enum):
    NEVER = "never"
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class EventType(str, Enum):
    """Categories of user activity recorded in the activity log."""

    VIEWED = "viewed"
    DISMISSED = "dismissed"
    IMPLEMENTED = "implemented"
    MODULE_COMPLETED = "module_completed"
    GUIDE_COMPLETED = "guide_completed"
    SESSION = "session"


class RecommendationStatus(str, Enum):
    """Lifecycle of a recommendation entry.

    ``DISMISSED`` and ``IMPLEMENTED`` are terminal for scoring cycles.
    ``SUPERSEDED`` marks an entry that was active but was not re-produced
    by the latest cycle; such tools remain eligible for future cycles.
    """

    ACTIVE = "active"
    DISMISSED = "dismissed"
    IMPLEMENTED = "implemented"
    SUPERSEDED = "superseded"


TERMINAL_STATUSES = frozenset(
    {RecommendationStatus.DISMISSED, RecommendationStatus.IMPLEMENTED}
)


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeedbackAction(str, Enum):
    """User reactions to a surfaced recommendation."""

    INTERESTED = "interested"
    DISMISSED = "dismissed"
    IMPLEMENTING = "implementing"


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


def priority_for(score: int) -> Priority:
    """Map a 0–100 relevance score to its priority bucket.

    Args:
        score: Clamped relevance score.

    Returns:
        :attr:`Priority.HIGH` for ``score >= 80``, :attr:`Priority.MEDIUM`
        for ``score >= 60``, otherwise :attr:`Priority.LOW`.
    """
    if score >= HIGH_PRIORITY_MIN_SCORE:
        return Priority.HIGH
    if score >= MEDIUM_PRIORITY_MIN_SCORE:
        return Priority.MEDIUM
    return Priority.LOW


@dataclass(frozen=True)
class Tool:
    """A third-party AI product in the catalogue.

    Attributes:
        tool_id: Stable identifier.
        name: Display name; used as the final ranking tie-breaker.
        category: Catalogue category label (e.g. ``"writing"``).
        pricing_model: Free, freemium or paid.
        setup_difficulty: Easy, medium or hard.
        time_to_value: Coarse bucket for how quickly the tool pays off.
        target_roles: Roles the vendor targets.  Matched case-insensitively.
        target_industries: Industries the vendor targets.
        pricing_amount: Monthly price for paid plans, ``None`` if unknown.
        user_rating: Average user rating in [0, 5].
        popularity_score: Catalogue-wide popularity; secondary sort key.
        status: Catalogue status. Only ``"active"`` tools are recommended.
    """

    tool_id: str
    name: str
    category: str
    pricing_model: PricingModel
    setup_difficulty: SetupDifficulty
    time_to_value: TimeToValue
    target_roles: frozenset[str] = frozenset()
    target_industries: frozenset[str] = frozenset()
    pricing_amount: float | None = None
    user_rating: float = 0.0
    popularity_score: float = 0.0
    status: str = "active"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tool:
        """Build a :class:`Tool` from a plain catalogue record.

        Raises:
            ValueError: If an enumerated attribute has an unknown value.
            KeyError: If a required attribute is missing.
        """
        amount = data.get("pricing_amount")
        return cls(
            tool_id=str(data["tool_id"]),
            name=data["name"],
            category=data.get("category", "uncategorized"),
            pricing_model=PricingModel(data["pricing_model"]),
            setup_difficulty=SetupDifficulty(data["setup_difficulty"]),
            time_to_value=TimeToValue(data["time_to_value"]),
            target_roles=frozenset(data.get("target_roles") or ()),
            target_industries=frozenset(data.get("target_industries") or ()),
            pricing_amount=float(amount) if amount is not None else None,
            user_rating=float(data.get("user_rating", 0.0)),
            popularity_score=float(data.get("popularity_score", 0.0)),
            status=data.get("status", "active"),
        )


@dataclass
class UserProfile:
    """Onboarding answers for a single user."""

    user_id: str
    role: str
    industry: str = ""
    company_size: str = ""
    ai_experience: AIExperience = AIExperience.BEGINNER
    goals: list[str] = field(default_factory=list)
    time_availability: str = ""


@dataclass(frozen=True)
class ActivityEvent:
    """A single immutable entry in the activity log.

    Attributes:
        user_id: The acting user.
        event_type: The category of activity.
        timestamp: When the activity happened (UTC).
        tool_id: The tool involved, for tool-related events.
        metadata: Free-form extra data.  ``module_id`` / ``guide_id`` identify
            completed items; ``duration_minutes`` carries session length.
        event_id: Optional caller-supplied idempotency id.
    """

    user_id: str
    event_type: EventType
    timestamp: datetime
    tool_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    event_id: str | None = None

    def dedup_key(self) -> tuple[str, ...] | None:
        """Return the idempotency key for this event, or ``None``.

        State-transition events ("mark complete") collapse to one key per
        item so replaying them never double counts.  Events without a
        natural key (sessions, views) return ``None`` unless the caller
        supplied :attr:`event_id`.
        """
        if self.event_id:
            return ("event", self.event_id)
        if self.event_type == EventType.IMPLEMENTED and self.tool_id:
            return (EventType.IMPLEMENTED.value, self.tool_id)
        if self.event_type == EventType.MODULE_COMPLETED and self.metadata.get("module_id"):
            return (self.event_type.value, str(self.metadata["module_id"]))
        if self.event_type == EventType.GUIDE_COMPLETED and self.metadata.get("guide_id"):
            return (self.event_type.value, str(self.metadata["guide_id"]))
        return None

    def activity_date(self) -> date:
        return self.timestamp.date()


@dataclass
class ActivitySummary:
    """Behavioural signals distilled from a user's activity log."""

    viewed_tool_ids: set[str] = field(default_factory=set)
    dismissed_tool_ids: set[str] = field(default_factory=set)
    implemented_tool_ids: set[str] = field(default_factory=set)
    modules_completed: int = 0
    guides_completed: int = 0
    minutes_invested: int = 0

    @classmethod
    def from_events(cls, events: list[ActivityEvent]) -> ActivitySummary:
        summary = cls()
        for event in events:
            if event.event_type == EventType.VIEWED and event.tool_id:
                summary.viewed_tool_ids.add(event.tool_id)
            elif event.event_type == EventType.DISMISSED and event.tool_id:
                summary.dismissed_tool_ids.add(event.tool_id)
            elif event.event_type == EventType.IMPLEMENTED and event.tool_id:
                summary.implemented_tool_ids.add(event.tool_id)
            elif event.event_type == EventType.MODULE_COMPLETED:
                summary.modules_completed += 1
            elif event.event_type == EventType.GUIDE_COMPLETED:
                summary.guides_completed += 1
            elif event.event_type == EventType.SESSION:
                summary.minutes_invested += int(event.metadata.get("duration_minutes", 0))
        return summary


@dataclass(frozen=True)
class ScoreResult:
    value: int
    reason: str

    @property
    def priority(self) -> Priority:
        return priority_for(self.value)


@dataclass
class RecommendationEntry:
    """One recommendation of a tool to a user.

    There is at most one entry per ``(user_id, tool_id)`` pair; feedback
    and new cycles change :attr:`status` in place, entries are never
    deleted.
    """

    user_id: str
    tool_id: str
    score: int
    reason: str
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    generated_at: datetime | None = None
    updated_at: datetime | None = None
    rationale: str | None = None

    @property
    def priority(self) -> Priority:
        return priority_for(self.score)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.tool_id)


# Stats fields that achievement criteria may reference
STAT_FIELDS = frozenset(
    {
        "total_points",
        "streak_days",
        "tools_implemented",
        "modules_completed",
        "guides_completed",
        "total_time_invested_minutes",
    }
)


@dataclass
class UserStats:
    """Derived progression state for one user.

    Every counter only grows, except :attr:`streak_days` (see
    :meth:`~adoption.ledger.ProgressionLedger.apply_event`).
    :attr:`version` is bumped on every write and used for
    compare-and-set updates.
    """

    user_id: str
    total_points: int = 0
    streak_days: int = 0
    tools_implemented: int = 0
    modules_completed: int = 0
    guides_completed: int = 0
    achievements_earned: int = 0
    total_time_invested_minutes: int = 0
    last_activity_date: date | None = None
    level_title: str = "AI Novice"
    version: int = 0

    def stat(self, name: str) -> int:
        if name not in STAT_FIELDS:
            raise ValueError(f"Unknown stats field {name!r}")
        return getattr(self, name)


@dataclass(frozen=True)
class Level:
    level_number: int
    title: str
    points_required: int
    description: str = ""


@dataclass(frozen=True)
class ThresholdCriterion:
    """Unlocks once ``stats.<field> >= value``."""

    field: str
    value: int
    kind: str = "threshold"

    def __post_init__(self) -> None:
        if self.field not in STAT_FIELDS:
            raise ValueError(f"Unknown stats field {self.field!r}")
        if self.value <= 0:
            raise ValueError(f"Threshold must be positive, got {self.value!r}")


@dataclass(frozen=True)
class AllOfCriterion:
    """Unlocks once every nested criterion holds."""

    criteria: tuple[Criterion, ...]
    kind: str = "all_of"

    def __post_init__(self) -> None:
        if not self.criteria:
            raise ValueError("all_of criterion needs at least one part")


Criterion = Union[ThresholdCriterion, AllOfCriterion]


def criterion_from_dict(data: dict[str, Any]) -> Criterion:
    """Parse the tagged dict form of an achievement criterion.

    Examples::

        {"kind": "threshold", "field": "streak_days", "value": 7}
        {"kind": "all_of", "criteria": [{...}, {...}]}

    Raises:
        ValueError: On an unknown ``kind`` or stats field.
    """
    kind = data.get("kind")
    if kind == "threshold":
        return ThresholdCriterion(field=data["field"], value=int(data["value"]))
    if kind == "all_of":
        parts = tuple(criterion_from_dict(part) for part in data.get("criteria", []))
        return AllOfCriterion(criteria=parts)
    raise ValueError(f"Unknown criterion kind {kind!r}")


@dataclass(frozen=True)
class Achievement:
    achievement_id: str
    name: str
    criteria: Criterion
    description: str = ""
    category: str = "general"
    points: int = 0
    rarity: Rarity = Rarity.COMMON


@dataclass(frozen=True)
class UserAchievement:
    user_id: str
    achievement_id: str
    earned_at: datetime


@dataclass(frozen=True)
class PointAward:
    """Audit record of a single point award or deduction."""

    user_id: str
    amount: int
    reason: str
    awarded_at: datetime
    balance_after: int
