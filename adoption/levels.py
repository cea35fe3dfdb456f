"""Level lookup: maps cumulative points to the current and next level."""

from __future__ import annotations

import numpy as np

from adoption.models import Level

DEFAULT_LEVELS: list[Level] = [
    Level(1, "AI Novice", 0, "Just getting started with AI tools"),
    Level(2, "AI Explorer", 100, "Trying out the first tools"),
    Level(3, "AI Practitioner", 250, "Using AI in day-to-day work"),
    Level(4, "AI Specialist", 500, "Several tools implemented with confidence"),
    Level(5, "AI Strategist", 1000, "Shaping how the team adopts AI"),
    Level(6, "AI Champion", 2000, "Leading AI adoption across the organisation"),
    Level(7, "AI Visionary", 5000, "Defining what comes next"),
]


class LevelResolver:
    """Pure threshold lookup over an ordered level catalogue.

    Args:
        levels: Level catalogue in any order.  Must be non-empty and its
            lowest threshold must be 0 so every non-negative point total
            has a current level.

    Raises:
        ValueError: If the catalogue is empty, does not start at 0, or
            repeats a threshold.
    """

    def __init__(self, levels: list[Level]) -> None:
        if not levels:
            raise ValueError("Level catalogue must not be empty")
        self._levels = sorted(levels, key=lambda lv: lv.points_required)
        self._thresholds = np.array([lv.points_required for lv in self._levels], dtype=np.int64)
        if self._thresholds[0] != 0:
            raise ValueError("Lowest level must require 0 points")
        if np.any(np.diff(self._thresholds) == 0):
            raise ValueError("Level thresholds must be unique")

    def current_level(self, points: int) -> Level:
        """Return the highest level whose threshold is ``<= points``."""
        idx = int(np.searchsorted(self._thresholds, max(points, 0), side="right")) - 1
        return self._levels[idx]

    def next_level(self, points: int) -> Level | None:
        """Return the lowest level whose threshold is ``> points``, or ``None`` at max level."""
        idx = int(np.searchsorted(self._thresholds, max(points, 0), side="right"))
        if idx >= len(self._levels):
            return None
        return self._levels[idx]

    @staticmethod
    def level_progress(points: int, current: Level, next_level: Level | None) -> float:
        """Percentage of the way from *current* to *next_level*, in [0, 100].

        Returns 100 when *next_level* is ``None`` (max level reached).
        """
        if next_level is None:
            return 100.0
        span = next_level.points_required - current.points_required
        if span <= 0:
            return 100.0
        pct = (points - current.points_required) / span * 100
        return float(np.clip(pct, 0.0, 100.0))
