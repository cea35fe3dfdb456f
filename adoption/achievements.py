"""Achievement criteria interpreter and progress calculation."""

from __future__ import annotations

from adoption.models import (
    Achievement,
    AllOfCriterion,
    Criterion,
    Rarity,
    ThresholdCriterion,
    UserStats,
)

DEFAULT_ACHIEVEMENTS: list[Achievement] = [
    Achievement(
        "first_tool",
        "First Steps",
        ThresholdCriterion("tools_implemented", 1),
        description="Implement your first AI tool",
        category="implementation",
        points=50,
        rarity=Rarity.COMMON,
    ),
    Achievement(
        "tool_collector",
        "Tool Collector",
        ThresholdCriterion("tools_implemented", 5),
        description="Implement five AI tools",
        category="implementation",
        points=200,
        rarity=Rarity.RARE,
    ),
    Achievement(
        "eager_learner",
        "Eager Learner",
        ThresholdCriterion("modules_completed", 3),
        description="Complete three learning modules",
        category="learning",
        points=75,
        rarity=Rarity.UNCOMMON,
    ),
    Achievement(
        "guide_follower",
        "Guide Follower",
        ThresholdCriterion("guides_completed", 3),
        description="Finish three implementation guides",
        category="learning",
        points=75,
        rarity=Rarity.UNCOMMON,
    ),
    Achievement(
        "week_streak",
        "Consistency Counts",
        ThresholdCriterion("streak_days", 7),
        description="Stay active seven days in a row",
        category="engagement",
        points=100,
        rarity=Rarity.RARE,
    ),
    Achievement(
        "time_investor",
        "Time Investor",
        ThresholdCriterion("total_time_invested_minutes", 600),
        description="Invest ten hours in AI adoption",
        category="engagement",
        points=150,
        rarity=Rarity.EPIC,
    ),
    Achievement(
        "all_rounder",
        "All-Rounder",
        AllOfCriterion(
            (
                ThresholdCriterion("tools_implemented", 3),
                ThresholdCriterion("modules_completed", 3),
                ThresholdCriterion("guides_completed", 3),
            )
        ),
        description="Implement, learn and follow guides, three of each",
        category="mastery",
        points=300,
        rarity=Rarity.LEGENDARY,
    ),
]

_RARITY_LABELS = {
    Rarity.COMMON: "Common",
    Rarity.UNCOMMON: "Uncommon",
    Rarity.RARE: "Rare",
    Rarity.EPIC: "Epic",
    Rarity.LEGENDARY: "Legendary",
}


def is_met(criterion: Criterion, stats: UserStats) -> bool:
    """Evaluate a criterion against a stats snapshot."""
    if isinstance(criterion, ThresholdCriterion):
        return stats.stat(criterion.field) >= criterion.value
    if isinstance(criterion, AllOfCriterion):
        return all(is_met(part, stats) for part in criterion.criteria)
    raise TypeError(f"Unsupported criterion {criterion!r}")


def criterion_progress(criterion: Criterion, stats: UserStats) -> float:
    """Percentage progress towards *criterion*, capped at 100.

    A composite criterion is only as far along as its least advanced part.
    """
    if isinstance(criterion, ThresholdCriterion):
        return min(100.0, stats.stat(criterion.field) / criterion.value * 100)
    if isinstance(criterion, AllOfCriterion):
        return min(criterion_progress(part, stats) for part in criterion.criteria)
    raise TypeError(f"Unsupported criterion {criterion!r}")


def rarity_label(rarity: Rarity) -> str:
    return _RARITY_LABELS.get(rarity, "Unknown")


class AchievementResolver:
    """Pure queries over an achievement catalogue.

    Creating :class:`~adoption.models.UserAchievement` rows is left to the
    caller (:class:`~adoption.ledger.ProgressionLedger`), which relies on the
    store's insert-if-absent to keep earns unique.

    Args:
        achievements: The static achievement catalogue.
    """

    def __init__(self, achievements: list[Achievement]) -> None:
        ids = [a.achievement_id for a in achievements]
        if len(ids) != len(set(ids)):
            raise ValueError("Achievement ids must be unique")
        self._achievements = list(achievements)

    def get(self, achievement_id: str) -> Achievement | None:
        for achievement in self._achievements:
            if achievement.achievement_id == achievement_id:
                return achievement
        return None

    def progress(self, achievement: Achievement, stats: UserStats) -> float:
        return criterion_progress(achievement.criteria, stats)

    def satisfied(self, stats: UserStats) -> list[Achievement]:
        """Return every achievement whose criteria *stats* currently meets."""
        return [a for a in self._achievements if is_met(a.criteria, stats)]

    def pending(self, stats: UserStats, earned_ids: set[str]) -> list[tuple[Achievement, float]]:
        """Return not-yet-earned achievements with their progress, most advanced first."""
        rows = [
            (a, self.progress(a, stats))
            for a in self._achievements
            if a.achievement_id not in earned_ids
        ]
        rows.sort(key=lambda row: (-row[1], row[0].achievement_id))
        return rows
