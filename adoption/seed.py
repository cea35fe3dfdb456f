"""Sample tool catalogue for local runs and demos."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from adoption.models import Tool

logger = logging.getLogger(__name__)

SAMPLE_TOOLS: list[dict[str, Any]] = [
    {
        "tool_id": "chatgpt_plus",
        "name": "ChatGPT Plus",
        "category": "writing",
        "pricing_model": "paid",
        "pricing_amount": 20,
        "setup_difficulty": "easy",
        "time_to_value": "minutes",
        "target_roles": ["ceo", "manager", "individual", "cmo"],
        "target_industries": ["technology", "marketing", "finance"],
        "user_rating": 4.7,
        "popularity_score": 98,
    },
    {
        "tool_id": "perplexity_pro",
        "name": "Perplexity Pro",
        "category": "research",
        "pricing_model": "freemium",
        "pricing_amount": 20,
        "setup_difficulty": "easy",
        "time_to_value": "minutes",
        "target_roles": ["ceo", "cfo", "director"],
        "target_industries": ["finance", "consulting"],
        "user_rating": 4.6,
        "popularity_score": 85,
    },
    {
        "tool_id": "otter_ai",
        "name": "Otter.ai",
        "category": "meetings",
        "pricing_model": "freemium",
        "pricing_amount": 17,
        "setup_difficulty": "easy",
        "time_to_value": "minutes",
        "target_roles": ["manager", "director", "vp"],
        "target_industries": ["technology", "consulting"],
        "user_rating": 4.4,
        "popularity_score": 72,
    },
    {
        "tool_id": "grammarly_business",
        "name": "Grammarly Business",
        "category": "writing",
        "pricing_model": "paid",
        "pricing_amount": 15,
        "setup_difficulty": "easy",
        "time_to_value": "minutes",
        "target_roles": ["individual", "manager"],
        "target_industries": ["marketing", "education"],
        "user_rating": 4.5,
        "popularity_score": 80,
    },
    {
        "tool_id": "calendly_ai",
        "name": "Calendly AI",
        "category": "scheduling",
        "pricing_model": "freemium",
        "pricing_amount": 12,
        "setup_difficulty": "easy",
        "time_to_value": "hours",
        "target_roles": ["manager", "individual", "vp"],
        "target_industries": ["sales", "consulting"],
        "user_rating": 4.3,
        "popularity_score": 65,
    },
    {
        "tool_id": "gamma",
        "name": "Gamma",
        "category": "presentations",
        "pricing_model": "freemium",
        "pricing_amount": 10,
        "setup_difficulty": "easy",
        "time_to_value": "minutes",
        "target_roles": ["ceo", "cmo", "director"],
        "target_industries": ["marketing", "technology"],
        "user_rating": 4.2,
        "popularity_score": 60,
    },
    {
        "tool_id": "zapier_ai",
        "name": "Zapier AI",
        "category": "automation",
        "pricing_model": "freemium",
        "pricing_amount": 30,
        "setup_difficulty": "medium",
        "time_to_value": "hours",
        "target_roles": ["coo", "manager", "cto"],
        "target_industries": ["technology", "retail"],
        "user_rating": 4.4,
        "popularity_score": 77,
    },
    {
        "tool_id": "tableau_ai",
        "name": "Tableau AI",
        "category": "analytics",
        "pricing_model": "paid",
        "pricing_amount": 75,
        "setup_difficulty": "hard",
        "time_to_value": "days",
        "target_roles": ["cfo", "cto", "director"],
        "target_industries": ["finance", "healthcare", "retail"],
        "user_rating": 4.1,
        "popularity_score": 58,
    },
    {
        "tool_id": "github_copilot",
        "name": "GitHub Copilot",
        "category": "development",
        "pricing_model": "paid",
        "pricing_amount": 19,
        "setup_difficulty": "medium",
        "time_to_value": "hours",
        "target_roles": ["cto", "individual"],
        "target_industries": ["technology"],
        "user_rating": 4.6,
        "popularity_score": 90,
    },
    {
        "tool_id": "jasper",
        "name": "Jasper",
        "category": "marketing",
        "pricing_model": "paid",
        "pricing_amount": 49,
        "setup_difficulty": "medium",
        "time_to_value": "hours",
        "target_roles": ["cmo", "manager"],
        "target_industries": ["marketing", "retail"],
        "user_rating": 4.0,
        "popularity_score": 55,
    },
]


def load_tools(path: str | None = None) -> list[Tool]:
    """Return catalogue tools from a JSON file, or the bundled sample set.

    The file must hold a JSON list of records in the same shape as
    :data:`SAMPLE_TOOLS`.

    Raises:
        ValueError: If a record has an unknown enumerated value.
    """
    if path:
        records = json.loads(Path(path).read_text(encoding="utf-8"))
        logger.info("Loaded %d tool records from %s.", len(records), path)
    else:
        records = SAMPLE_TOOLS
    return [Tool.from_dict(record) for record in records]
