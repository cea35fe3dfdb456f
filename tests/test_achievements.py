"""Tests for achievement criteria parsing, evaluation and progress."""

from __future__ import annotations

import pytest

from adoption.achievements import (
    DEFAULT_ACHIEVEMENTS,
    AchievementResolver,
    criterion_progress,
    is_met,
    rarity_label,
)
from adoption.models import (
    Achievement,
    AllOfCriterion,
    Rarity,
    ThresholdCriterion,
    UserStats,
    criterion_from_dict,
)


class TestCriterionFromDict:
    def test_threshold(self) -> None:
        criterion = criterion_from_dict({"kind": "threshold", "field": "streak_days", "value": 7})
        assert criterion == ThresholdCriterion("streak_days", 7)

    def test_all_of(self) -> None:
        criterion = criterion_from_dict(
            {
                "kind": "all_of",
                "criteria": [
                    {"kind": "threshold", "field": "modules_completed", "value": 1},
                    {"kind": "threshold", "field": "guides_completed", "value": 2},
                ],
            }
        )
        assert isinstance(criterion, AllOfCriterion)
        assert len(criterion.criteria) == 2

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            criterion_from_dict({"kind": "any_of", "criteria": []})

    def test_unknown_field(self) -> None:
        with pytest.raises(ValueError):
            criterion_from_dict({"kind": "threshold", "field": "karma", "value": 1})

    def test_non_positive_threshold(self) -> None:
        with pytest.raises(ValueError):
            ThresholdCriterion("streak_days", 0)


class TestEvaluation:
    def test_threshold_met(self) -> None:
        stats = UserStats(user_id="u", tools_implemented=1)
        assert is_met(ThresholdCriterion("tools_implemented", 1), stats)

    def test_threshold_not_met(self) -> None:
        stats = UserStats(user_id="u", tools_implemented=0)
        assert not is_met(ThresholdCriterion("tools_implemented", 1), stats)

    def test_all_of_needs_every_part(self) -> None:
        criterion = AllOfCriterion(
            (ThresholdCriterion("modules_completed", 2), ThresholdCriterion("streak_days", 3))
        )
        assert not is_met(criterion, UserStats(user_id="u", modules_completed=2, streak_days=1))
        assert is_met(criterion, UserStats(user_id="u", modules_completed=2, streak_days=3))


class TestProgress:
    def test_partial(self) -> None:
        stats = UserStats(user_id="u", streak_days=3)
        assert criterion_progress(ThresholdCriterion("streak_days", 7), stats) == pytest.approx(
            3 / 7 * 100
        )

    def test_capped_at_100(self) -> None:
        stats = UserStats(user_id="u", total_time_invested_minutes=1200)
        assert criterion_progress(
            ThresholdCriterion("total_time_invested_minutes", 600), stats
        ) == 100.0

    def test_all_of_uses_least_advanced_part(self) -> None:
        criterion = AllOfCriterion(
            (ThresholdCriterion("modules_completed", 4), ThresholdCriterion("guides_completed", 4))
        )
        stats = UserStats(user_id="u", modules_completed=4, guides_completed=1)
        assert criterion_progress(criterion, stats) == pytest.approx(25.0)


class TestAchievementResolver:
    def test_duplicate_ids_rejected(self) -> None:
        a = Achievement("x", "X", ThresholdCriterion("streak_days", 1))
        with pytest.raises(ValueError):
            AchievementResolver([a, a])

    def test_satisfied(self) -> None:
        resolver = AchievementResolver(DEFAULT_ACHIEVEMENTS)
        stats = UserStats(user_id="u", tools_implemented=1)
        ids = {a.achievement_id for a in resolver.satisfied(stats)}
        assert ids == {"first_tool"}

    def test_pending_excludes_earned_and_sorts_by_progress(self) -> None:
        resolver = AchievementResolver(DEFAULT_ACHIEVEMENTS)
        stats = UserStats(user_id="u", tools_implemented=1, modules_completed=2)
        pending = resolver.pending(stats, earned_ids={"first_tool"})
        ids = [a.achievement_id for a, _ in pending]
        assert "first_tool" not in ids
        assert ids[0] == "eager_learner"
        progresses = [p for _, p in pending]
        assert progresses == sorted(progresses, reverse=True)

    def test_get(self) -> None:
        resolver = AchievementResolver(DEFAULT_ACHIEVEMENTS)
        assert resolver.get("week_streak").name == "Consistency Counts"
        assert resolver.get("missing") is None


class TestRarityLabel:
    def test_labels(self) -> None:
        assert rarity_label(Rarity.LEGENDARY) == "Legendary"
        assert rarity_label(Rarity.COMMON) == "Common"
