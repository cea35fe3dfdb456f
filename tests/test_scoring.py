"""Tests for adoption.scoring.ScoringEngine."""

from __future__ import annotations

import itertools

import pytest

from adoption.models import (
    AIExperience,
    ActivitySummary,
    Priority,
    PricingModel,
    SetupDifficulty,
    TimeToValue,
    UserProfile,
)
from adoption.scoring import REASON_SEPARATOR, ScoringEngine, industry_matches
from conftest import make_tool


@pytest.fixture
def scorer() -> ScoringEngine:
    return ScoringEngine()


class TestWorkedExample:
    def test_all_bonuses_clamp_to_100(self, scorer, quick_win_tool, novice_manager) -> None:
        """50 + 20 + 25 + 20 + 15 + 10 = 140, clamped to 100."""
        result = scorer.score(quick_win_tool, novice_manager)
        assert result.value == 100
        assert result.priority == Priority.HIGH

    def test_reason_lists_every_fired_bonus(self, scorer, quick_win_tool, novice_manager) -> None:
        result = scorer.score(quick_win_tool, novice_manager)
        fragments = result.reason.split(REASON_SEPARATOR)
        assert fragments == [
            "Simple setup process",
            "See results in minutes",
            "Free to start",
            "Perfect for Managers",
            "Great first step for AI beginners",
        ]

    def test_reason_is_concrete(self, scorer, quick_win_tool, novice_manager) -> None:
        result = scorer.score(quick_win_tool, novice_manager)
        assert "Simple setup process • " in result.reason
        assert result.reason.endswith("Great first step for AI beginners")


class TestIndividualBonuses:
    def test_base_only(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", pricing_amount=80.0)
        result = scorer.score(tool, advanced_cto)
        assert result.value == 50
        assert result.priority == Priority.LOW
        assert "rated 4.0/5" in result.reason

    def test_easy_setup(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", setup_difficulty=SetupDifficulty.EASY)
        assert scorer.score(tool, advanced_cto).value == 70

    def test_hours_to_value(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", time_to_value=TimeToValue.HOURS)
        result = scorer.score(tool, advanced_cto)
        assert result.value == 65
        assert result.reason == "Results within hours"

    def test_minutes_to_value(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", time_to_value=TimeToValue.MINUTES)
        assert scorer.score(tool, advanced_cto).value == 75

    def test_role_match_is_case_insensitive(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", target_roles=frozenset({"cto"}))
        result = scorer.score(tool, advanced_cto)
        assert result.value == 70
        assert result.reason == "Perfect for CTOs"

    def test_freemium(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", pricing_model=PricingModel.FREEMIUM)
        result = scorer.score(tool, advanced_cto)
        assert result.value == 60
        assert result.reason == "Free trial available"

    def test_cheap_paid(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", pricing_amount=20.0)
        result = scorer.score(tool, advanced_cto)
        assert result.value == 55
        assert result.reason == "Affordable at $20/month"

    def test_paid_without_amount_gets_no_pricing_bonus(self, scorer, advanced_cto) -> None:
        tool = make_tool("t", pricing_amount=None)
        assert scorer.score(tool, advanced_cto).value == 50

    def test_novice_bonus_requires_easy_setup(self, scorer) -> None:
        novice = UserProfile(user_id="u", role="Analyst", ai_experience=AIExperience.NEVER)
        medium = make_tool("t1", pricing_amount=99.0)
        easy = make_tool("t2", setup_difficulty=SetupDifficulty.EASY, pricing_amount=99.0)
        assert scorer.score(medium, novice).value == 50
        assert scorer.score(easy, novice).value == 80

    def test_no_role_match_is_not_disqualifying(self, scorer, novice_manager, enterprise_tool) -> None:
        result = scorer.score(enterprise_tool, novice_manager)
        assert result.value == 50


class TestProperties:
    def test_deterministic(self, scorer, sample_tools, novice_manager) -> None:
        summary = ActivitySummary(viewed_tool_ids={"t_quick"})
        for tool in sample_tools:
            first = scorer.score(tool, novice_manager, summary)
            second = scorer.score(tool, novice_manager, summary)
            assert first == second

    def test_bounded_for_every_combination(self, scorer) -> None:
        profiles = [
            UserProfile(user_id="u", role="manager", ai_experience=exp) for exp in AIExperience
        ]
        for difficulty, ttv, pricing, amount in itertools.product(
            SetupDifficulty, TimeToValue, PricingModel, (None, 5.0, 100.0)
        ):
            tool = make_tool(
                "t",
                setup_difficulty=difficulty,
                time_to_value=ttv,
                pricing_model=pricing,
                pricing_amount=amount,
                target_roles=frozenset({"manager"}),
            )
            for profile in profiles:
                result = scorer.score(tool, profile)
                assert 0 <= result.value <= 100
                assert result.reason


class TestIndustryMatches:
    def test_case_insensitive(self) -> None:
        assert industry_matches("technology", frozenset({"Technology"}))

    def test_no_match(self) -> None:
        assert not industry_matches("retail", frozenset({"Technology"}))

    def test_empty_industry(self) -> None:
        assert not industry_matches("", frozenset({"Technology"}))

    def test_industry_never_changes_score(self, novice_manager) -> None:
        plain = make_tool("x")
        targeted = make_tool("y", target_industries=frozenset({"technology"}))
        engine = ScoringEngine()
        assert engine.score(plain, novice_manager).value == engine.score(targeted, novice_manager).value
