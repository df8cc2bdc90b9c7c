"""Quest templates and the deterministic daily selection."""

from __future__ import annotations

import hashlib
import random
import uuid
from datetime import date

from civicquest.gamification.enums import QuestType

DAILY_CHECK_IN: dict = {
    "type": QuestType.DAILY_LOGIN,
    "title": "Daily Check-in",
    "description": "Open the app today to collect your check-in reward",
    "required": 1,
    "reward_amount": 10,
}

QUEST_TEMPLATES: list[dict] = [
    {
        "type": QuestType.REPORT_ISSUES,
        "title": "Neighborhood Watch",
        "description": "Report 2 issues in your area",
        "required": 2,
        "reward_amount": 100,
    },
    {
        "type": QuestType.VERIFY_ISSUES,
        "title": "Fact Checker",
        "description": "Verify 3 issues reported by other trainers",
        "required": 3,
        "reward_amount": 60,
    },
    {
        "type": QuestType.HELP_FOUND_ITEMS,
        "title": "Good Samaritan",
        "description": "Help return a found item to its owner",
        "required": 1,
        "reward_amount": 75,
    },
    {
        "type": QuestType.VISIT_LOCATIONS,
        "title": "City Explorer",
        "description": "Visit 2 community venues",
        "required": 2,
        "reward_amount": 50,
    },
]


def _seed_for(user_id: uuid.UUID, day: date) -> int:
    digest = hashlib.sha256(f"{user_id}:{day.isoformat()}".encode()).digest()
    return int.from_bytes(digest[:8], "big")


def select_daily_templates(user_id: uuid.UUID, day: date, count: int) -> list[dict]:
    """The check-in quest plus ``count`` templates, stable for (user, day).

    The same inputs always pick the same templates, so regenerating a day's
    quests can never introduce a different quest type.
    """
    count = max(0, min(count, len(QUEST_TEMPLATES)))
    rng = random.Random(_seed_for(user_id, day))  # noqa: S311
    picked = rng.sample(QUEST_TEMPLATES, count)
    return [DAILY_CHECK_IN, *picked]
