"""Closed vocabularies of the gamification domain.

Values are the strings stored in the database and returned by the API, so
they MUST match the mobile client's TrainerRank / QuestType unions.
"""

from __future__ import annotations

import enum


class Rank(str, enum.Enum):
    NOVICE_TRAINER = "Novice Trainer"
    ISSUE_SCOUT = "Issue Scout"
    COMMUNITY_GUARDIAN = "Community Guardian"
    DISTRICT_CHAMPION = "District Champion"
    ELITE_POKERANGER = "Elite PokeRanger"


class ReasonCode(str, enum.Enum):
    ISSUE_REPORT = "issue_report"
    ISSUE_VERIFICATION = "issue_verification"
    QUEST_COMPLETION = "quest_completion"
    BADGE_EARNED = "badge_earned"
    RANK_UP = "rank_up"
    OTHER = "other"


class QuestType(str, enum.Enum):
    VERIFY_ISSUES = "verify_issues"
    REPORT_ISSUES = "report_issues"
    HELP_FOUND_ITEMS = "help_found_items"
    VISIT_LOCATIONS = "visit_locations"
    DAILY_LOGIN = "daily_login"


class QuestStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not QuestStatus.ACTIVE
