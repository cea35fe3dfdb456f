"""Additive relevance heuristic that turns a profile and a tool into a score and a reason."""

from __future__ import annotations

import logging

from adoption.models import (
    ActivitySummary,
    AIExperience,
    PricingModel,
    ScoreResult,
    SetupDifficulty,
    TimeToValue,
    Tool,
    UserProfile,
)

logger = logging.getLogger(__name__)

_BASE_SCORE = 50
_BONUS_EASY_SETUP = 20
_BONUS_MINUTES_TO_VALUE = 25
_BONUS_HOURS_TO_VALUE = 15
_BONUS_ROLE_MATCH = 20
_BONUS_FREE = 15
_BONUS_FREEMIUM = 10
_BONUS_CHEAP_PAID = 5
_BONUS_NOVICE_EASY = 10

_CHEAP_PAID_MAX_AMOUNT = 20.0

_MIN_SCORE = 0
_MAX_SCORE = 100

REASON_SEPARATOR = " • "


class ScoringEngine:
    """Scores a single tool for a single user.

    The heuristic is additive and fully deterministic so that every point
    can be explained back to the user:

    ==========================================  =====
    Signal                                      Bonus
    ==========================================  =====
    Base                                        50
    Easy setup                                  +20
    Value in minutes / hours                    +25 / +15
    Profile role in ``target_roles``            +20
    Free / freemium / paid at most $20          +15 / +10 / +5
    Never used AI and easy setup                +10
    ==========================================  =====

    The total is clamped to [0, 100].  A tool that matches neither the
    user's role nor industry still gets its base, pricing and difficulty
    points; ranking decides what to surface.
    """

    def score(
        self,
        tool: Tool,
        profile: UserProfile,
        summary: ActivitySummary | None = None,
    ) -> ScoreResult:
        """Return the clamped relevance score and its human-readable reason.

        Args:
            tool: The candidate tool.
            profile: The requesting user's profile.
            summary: The user's activity summary.  Accepted for callers
                that have one; behavioural signals only affect ranking
                (see :func:`adoption.recommendations.rank`), never the score.

        Returns:
            A :class:`~adoption.models.ScoreResult`.
        """
        total = _BASE_SCORE
        fragments: list[str] = []

        if tool.setup_difficulty == SetupDifficulty.EASY:
            total += _BONUS_EASY_SETUP
            fragments.append("Simple setup process")

        if tool.time_to_value == TimeToValue.MINUTES:
            total += _BONUS_MINUTES_TO_VALUE
            fragments.append("See results in minutes")
        elif tool.time_to_value == TimeToValue.HOURS:
            total += _BONUS_HOURS_TO_VALUE
            fragments.append("Results within hours")

        pricing_bonus, pricing_fragment = self._pricing_bonus(tool)
        if pricing_bonus:
            total += pricing_bonus
            fragments.append(pricing_fragment)

        if _role_matches(profile.role, tool.target_roles):
            total += _BONUS_ROLE_MATCH
            fragments.append(f"Perfect for {profile.role}s")

        if (
            profile.ai_experience == AIExperience.NEVER
            and tool.setup_difficulty == SetupDifficulty.EASY
        ):
            total += _BONUS_NOVICE_EASY
            fragments.append("Great first step for AI beginners")

        value = max(_MIN_SCORE, min(_MAX_SCORE, total))
        if fragments:
            reason = REASON_SEPARATOR.join(fragments)
        else:
            reason = f"{tool.category.capitalize()} tool rated {tool.user_rating:.1f}/5 by users"

        logger.debug(
            "Scored tool %r for user %r: raw=%d clamped=%d", tool.tool_id, profile.user_id, total, value
        )
        return ScoreResult(value=value, reason=reason)

    @staticmethod
    def _pricing_bonus(tool: Tool) -> tuple[int, str]:
        if tool.pricing_model == PricingModel.FREE:
            return _BONUS_FREE, "Free to start"
        if tool.pricing_model == PricingModel.FREEMIUM:
            return _BONUS_FREEMIUM, "Free trial available"
        if tool.pricing_amount and tool.pricing_amount <= _CHEAP_PAID_MAX_AMOUNT:
            return _BONUS_CHEAP_PAID, f"Affordable at ${tool.pricing_amount:g}/month"
        return 0, ""


def _matches(value: str, targets: frozenset[str]) -> bool:
    if not value:
        return False
    wanted = value.casefold()
    return any(t.casefold() == wanted for t in targets)


def _role_matches(role: str, target_roles: frozenset[str]) -> bool:
    return _matches(role, target_roles)


def industry_matches(industry: str, target_industries: frozenset[str]) -> bool:
    """Case-insensitive membership of *industry* in *target_industries*.

    Not part of the score; the ranking step uses it to order equal scores.
    """
    return _matches(industry, target_industries)
