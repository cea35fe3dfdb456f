"""Shared pytest fixtures for all adoption-engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from adoption.achievements import DEFAULT_ACHIEVEMENTS, AchievementResolver
from adoption.catalogue import ToolCatalogue
from adoption.ledger import ProgressionLedger
from adoption.levels import DEFAULT_LEVELS, LevelResolver
from adoption.models import (
    AIExperience,
    PricingModel,
    SetupDifficulty,
    TimeToValue,
    Tool,
    UserProfile,
)
from adoption.recommendations import RecommendationSetManager
from adoption.scoring import ScoringEngine
from adoption.store import InMemoryStore


TS = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = TS) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_tool(tool_id: str, **overrides) -> Tool:
    fields = dict(
        tool_id=tool_id,
        name=tool_id.replace("_", " ").title(),
        category="writing",
        pricing_model=PricingModel.PAID,
        setup_difficulty=SetupDifficulty.MEDIUM,
        time_to_value=TimeToValue.DAYS,
        pricing_amount=50.0,
        user_rating=4.0,
        popularity_score=10.0,
    )
    fields.update(overrides)
    return Tool(**fields)


# ---------------------------------------------------------------------------
# Tool fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quick_win_tool() -> Tool:
    """Easy, instant, free, aimed at managers."""
    return make_tool(
        "t_quick",
        setup_difficulty=SetupDifficulty.EASY,
        time_to_value=TimeToValue.MINUTES,
        pricing_model=PricingModel.FREE,
        pricing_amount=None,
        target_roles=frozenset({"Manager"}),
        popularity_score=50.0,
    )


@pytest.fixture
def enterprise_tool() -> Tool:
    """Hard to set up, slow to pay off, expensive, no role match."""
    return make_tool(
        "t_enterprise",
        setup_difficulty=SetupDifficulty.HARD,
        time_to_value=TimeToValue.DAYS,
        pricing_model=PricingModel.PAID,
        pricing_amount=99.0,
        target_roles=frozenset({"CTO"}),
    )


@pytest.fixture
def sample_tools(quick_win_tool, enterprise_tool) -> list[Tool]:
    extra = [
        make_tool(
            "t_freemium",
            setup_difficulty=SetupDifficulty.EASY,
            time_to_value=TimeToValue.HOURS,
            pricing_model=PricingModel.FREEMIUM,
            popularity_score=30.0,
        ),
        make_tool(
            "t_cheap",
            pricing_model=PricingModel.PAID,
            pricing_amount=15.0,
            time_to_value=TimeToValue.HOURS,
            target_roles=frozenset({"manager"}),
            popularity_score=20.0,
        ),
        make_tool("t_plain_a", name="Alpha", popularity_score=5.0),
        make_tool("t_plain_b", name="Beta", popularity_score=5.0),
    ]
    return [quick_win_tool, enterprise_tool] + extra


# ---------------------------------------------------------------------------
# Profile fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def novice_manager() -> UserProfile:
    return UserProfile(
        user_id="u_mgr",
        role="Manager",
        industry="technology",
        ai_experience=AIExperience.NEVER,
        goals=["Increase personal productivity"],
    )


@pytest.fixture
def advanced_cto() -> UserProfile:
    return UserProfile(user_id="u_cto", role="CTO", ai_experience=AIExperience.ADVANCED)


# ---------------------------------------------------------------------------
# Wired components
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(sample_tools, novice_manager) -> InMemoryStore:
    s = InMemoryStore(
        tools=sample_tools, levels=DEFAULT_LEVELS, achievements=DEFAULT_ACHIEVEMENTS
    )
    s.save_profile(novice_manager)
    return s


@pytest.fixture
def ledger(store, clock) -> ProgressionLedger:
    return ProgressionLedger(
        store=store,
        levels=LevelResolver(DEFAULT_LEVELS),
        achievements=AchievementResolver(DEFAULT_ACHIEVEMENTS),
        clock=clock,
    )


@pytest.fixture
def catalogue(store) -> ToolCatalogue:
    cat = ToolCatalogue(store=store, refresh_interval_seconds=9999)
    cat.refresh()
    return cat


@pytest.fixture
def manager(store, catalogue, ledger, clock) -> RecommendationSetManager:
    return RecommendationSetManager(
        store=store,
        catalogue=catalogue,
        scorer=ScoringEngine(),
        ledger=ledger,
        clock=clock,
        default_limit=3,
    )
