"""User action tests: standard awards plus quest progress."""

from __future__ import annotations

import uuid

import pytest

from civicquest.exceptions import ValidationError
from civicquest.gamification.actions import ACTION_RULES, record_user_action
from civicquest.gamification.coin_ledger import CoinLedger
from civicquest.gamification.enums import QuestType, ReasonCode
from civicquest.gamification.quest_engine import QuestEngine


class TestRecordUserAction:
    @pytest.mark.asyncio
    async def test_issue_report_awards_50(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        result = await record_user_action(engine, profile_id, "issue_report", "issue-1", now)

        assert result.award.created is True
        assert result.award.transaction.amount == 50
        assert result.award.transaction.reason == ReasonCode.ISSUE_REPORT
        assert result.award.transaction.idempotency_key == "issue_report:issue-1"
        assert all(q.type == QuestType.REPORT_ISSUES for q in result.quests)

    @pytest.mark.asyncio
    async def test_replayed_action_changes_nothing(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        await record_user_action(engine, profile_id, "issue_verification", "issue-7", now)
        replay = await record_user_action(engine, profile_id, "issue_verification", "issue-7", now)

        assert replay.award.created is False
        assert replay.quests == []
        assert await CoinLedger(db_session).get_balance(profile_id) == 20

    @pytest.mark.asyncio
    async def test_same_reference_for_two_users(self, db_session, profile_id, now):
        from civicquest.users.service import create_profile

        other_id = uuid.uuid4()
        await create_profile(db_session, other_id, "gary_oak", now=now)
        engine = QuestEngine(db_session)

        mine = await record_user_action(engine, profile_id, "issue_verification", "issue-42", now)
        theirs = await record_user_action(engine, other_id, "issue_verification", "issue-42", now)

        assert mine.award.created is True
        assert theirs.award.created is True
        assert theirs.award.transaction.user_id == other_id
        assert theirs.award.new_balance == 20
        assert await CoinLedger(db_session).get_balance(profile_id) == 20
        assert await CoinLedger(db_session).get_balance(other_id) == 20

    @pytest.mark.asyncio
    async def test_action_without_reference_is_not_deduplicated(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        await record_user_action(engine, profile_id, "issue_verification", None, now)
        await record_user_action(engine, profile_id, "issue_verification", None, now)

        assert await CoinLedger(db_session).get_balance(profile_id) == 40

    @pytest.mark.asyncio
    async def test_venue_visit_progresses_without_award(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        result = await record_user_action(engine, profile_id, "venue_visit", "venue-3", now)

        assert result.award is None
        assert all(q.type == QuestType.VISIT_LOCATIONS for q in result.quests)
        assert await CoinLedger(db_session).get_balance(profile_id) == 0

    @pytest.mark.asyncio
    async def test_unknown_action(self, db_session, profile_id, now):
        with pytest.raises(ValidationError):
            await record_user_action(QuestEngine(db_session), profile_id, "teleport", None, now)

    def test_rules_cover_every_non_login_quest_type(self):
        covered = {rule.quest_type for rule in ACTION_RULES.values()}
        assert covered == set(QuestType) - {QuestType.DAILY_LOGIN}
