"""User actions reported by the app: the standard award plus quest progress."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from civicquest.db.models import Quest
from civicquest.exceptions import ValidationError
from civicquest.gamification.coin_ledger import REWARD_AMOUNTS, AwardResult
from civicquest.gamification.enums import QuestType, ReasonCode
from civicquest.gamification.quest_engine import QuestEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionRule:
    reason: ReasonCode | None
    quest_type: QuestType

    @property
    def points(self) -> int:
        return REWARD_AMOUNTS.get(self.reason, 0) if self.reason else 0


ACTION_RULES: dict[str, ActionRule] = {
    "issue_report": ActionRule(ReasonCode.ISSUE_REPORT, QuestType.REPORT_ISSUES),
    "issue_verification": ActionRule(ReasonCode.ISSUE_VERIFICATION, QuestType.VERIFY_ISSUES),
    "found_item_help": ActionRule(None, QuestType.HELP_FOUND_ITEMS),
    "venue_visit": ActionRule(None, QuestType.VISIT_LOCATIONS),
}


@dataclass
class ActionResult:
    award: AwardResult | None
    quests: list[Quest]


def action_award_key(reason: ReasonCode, reference_id: str) -> str:
    return f"{reason.value}:{reference_id}"


async def record_user_action(
    engine: QuestEngine,
    user_id: uuid.UUID,
    action: str,
    reference_id: str | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """Award the action's standard CivicCoins and advance matching quests.

    With a reference_id (the reported issue, the verified issue...) the award
    is idempotent and a replayed action changes nothing at all.
    """
    rule = ACTION_RULES.get(action)
    if rule is None:
        msg = f"Unknown action: {action!r}"
        raise ValidationError(msg)
    if now is None:
        now = datetime.now(timezone.utc)

    award = None
    if rule.reason is not None:
        key = action_award_key(rule.reason, reference_id) if reference_id else None
        award = await engine.ledger.award(
            user_id,
            rule.points,
            rule.reason,
            idempotency_key=key,
            now=now,
        )
        if not award.created:
            logger.info("Duplicate action %s ignored (user=%s, ref=%s)", action, user_id, reference_id)
            return ActionResult(award=award, quests=[])

    # Today's quests may not exist yet if the quest screen was never opened
    await engine.generate_daily_quests(user_id, now)
    quests = await engine.record_action(user_id, rule.quest_type, now)
    return ActionResult(award=award, quests=quests)
