"""Quest engine tests: generation, clamped progress, terminal states, rewards."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from civicquest.config import get_settings
from civicquest.db.models import PointTransaction, Quest
from civicquest.exceptions import NotFoundError, ValidationError
from civicquest.gamification.coin_ledger import CoinLedger
from civicquest.gamification.enums import QuestStatus, QuestType, ReasonCode
from civicquest.gamification.quest_engine import QuestEngine, is_new, quest_reward_key


async def _quest_of_type(engine: QuestEngine, user_id, quest_type: QuestType, now) -> Quest:
    quests = await engine.generate_daily_quests(user_id, now)
    return next(q for q in quests if q.type == quest_type)


async def _make_quest(
    db, user_id, now, *, required=3, reward=60, expires_in=timedelta(hours=36),
    quest_type=QuestType.VERIFY_ISSUES, quest_day=None,
) -> Quest:
    quest = Quest(
        id=uuid.uuid4(),
        user_id=user_id,
        title="Fact Checker",
        description="Verify 3 issues reported by other trainers",
        type=quest_type,
        reward_amount=reward,
        progress=0,
        required=required,
        status=QuestStatus.ACTIVE,
        quest_day=quest_day or (now - timedelta(days=3)).date(),
        expires_at=now + expires_in,
        created_at=now,
        updated_at=now,
    )
    db.add(quest)
    await db.commit()
    return quest


async def _completion_awards(db, quest_id) -> list[PointTransaction]:
    result = await db.execute(
        select(PointTransaction).where(PointTransaction.idempotency_key == quest_reward_key(quest_id))
    )
    return list(result.scalars().all())


class TestGenerateDailyQuests:
    @pytest.mark.asyncio
    async def test_generates_check_in_plus_templates(self, db_session, profile_id, now):
        quests = await QuestEngine(db_session).generate_daily_quests(profile_id, now)

        assert len(quests) == 1 + get_settings().daily_quest_count
        assert QuestType.DAILY_LOGIN in {q.type for q in quests}
        for quest in quests:
            assert quest.status == QuestStatus.ACTIVE
            assert quest.progress == 0
            assert quest.required > 0
            assert quest.reward_amount >= 0
            assert quest.expires_at > now

    @pytest.mark.asyncio
    async def test_same_day_is_idempotent(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        first = await engine.generate_daily_quests(profile_id, now)
        second = await engine.generate_daily_quests(profile_id, now + timedelta(hours=6))

        assert {q.id for q in first} == {q.id for q in second}
        count = (await db_session.execute(
            select(func.count()).select_from(Quest).where(Quest.user_id == profile_id)
        )).scalar_one()
        assert count == len(first)

    @pytest.mark.asyncio
    async def test_expiry_anchored_to_quest_day(self, db_session, profile_id, now):
        quests = await QuestEngine(db_session).generate_daily_quests(profile_id, now)
        day_start = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
        expected = day_start + timedelta(hours=get_settings().quest_lifetime_hours)
        assert all(q.expires_at == expected for q in quests)

    @pytest.mark.asyncio
    async def test_next_day_adds_new_set(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        today = await engine.generate_daily_quests(profile_id, now)
        tomorrow = await engine.generate_daily_quests(profile_id, now + timedelta(days=1))

        assert not {q.id for q in today} & {q.id for q in tomorrow}
        active = await engine.get_active_quests(profile_id, now + timedelta(days=1))
        active_types = [q.type for q in active]
        assert len(active_types) == len(set(active_types))
        assert active_types.count(QuestType.DAILY_LOGIN) == 1

        # Yesterday's quests survive only where today's set has no quest of that type
        carried = {q.type for q in today} - {q.type for q in tomorrow}
        assert {q.id for q in active} == {q.id for q in tomorrow} | {q.id for q in today if q.type in carried}

    @pytest.mark.asyncio
    async def test_next_day_supersedes_same_type(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        today = await engine.generate_daily_quests(profile_id, now)
        tomorrow = await engine.generate_daily_quests(profile_id, now + timedelta(days=1))

        repeated = {q.type for q in tomorrow}
        for quest in today:
            stored = await engine.get_quest(quest.id)
            if quest.type in repeated:
                assert stored.status == QuestStatus.EXPIRED
            else:
                assert stored.status == QuestStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_missing_profile(self, db_session, now):
        with pytest.raises(NotFoundError):
            await QuestEngine(db_session).generate_daily_quests(uuid.uuid4(), now)


class TestUpdateProgress:
    @pytest.mark.asyncio
    async def test_three_steps_complete_with_one_reward(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        quest = await _make_quest(db_session, profile_id, now, required=3, reward=60)

        await engine.update_progress(quest.id, 1, now)
        second = await engine.update_progress(quest.id, 1, now)
        assert (second.progress, second.status) == (2, QuestStatus.ACTIVE)

        third = await engine.update_progress(quest.id, 1, now)
        assert (third.progress, third.status) == (3, QuestStatus.COMPLETED)
        assert third.completed_at == now

        awards = await _completion_awards(db_session, quest.id)
        assert len(awards) == 1
        assert awards[0].amount == 60
        assert awards[0].reason == ReasonCode.QUEST_COMPLETION
        assert await CoinLedger(db_session).get_balance(profile_id) == 60

        fourth = await engine.update_progress(quest.id, 1, now)
        assert (fourth.progress, fourth.status) == (3, QuestStatus.COMPLETED)
        assert len(await _completion_awards(db_session, quest.id)) == 1
        assert await CoinLedger(db_session).get_balance(profile_id) == 60

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        quest = await _make_quest(db_session, profile_id, now, required=3)

        for increment in (2, 5, 1, 7):
            updated = await engine.update_progress(quest.id, increment, now)
            assert 0 <= updated.progress <= updated.required

        assert updated.progress == 3
        assert updated.status == QuestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_expired_quest_absorbs_updates(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        quest = await _make_quest(db_session, profile_id, now, expires_in=timedelta(hours=1))
        await engine.update_progress(quest.id, 1, now)

        later = now + timedelta(hours=2)
        expired = await engine.update_progress(quest.id, 1, later)
        assert expired.status == QuestStatus.EXPIRED
        assert expired.progress == 1

        again = await engine.update_progress(quest.id, 5, later)
        assert (again.status, again.progress) == (QuestStatus.EXPIRED, 1)
        assert await _completion_awards(db_session, quest.id) == []

    @pytest.mark.asyncio
    async def test_zero_reward_completes_without_award(self, db_session, profile_id, now):
        quest = await _make_quest(db_session, profile_id, now, required=1, reward=0)
        done = await QuestEngine(db_session).update_progress(quest.id, 1, now)

        assert done.status == QuestStatus.COMPLETED
        assert await _completion_awards(db_session, quest.id) == []

    @pytest.mark.parametrize("increment", [0, -1, True, 1.5])
    @pytest.mark.asyncio
    async def test_invalid_increment(self, db_session, profile_id, now, increment):
        quest = await _make_quest(db_session, profile_id, now)
        with pytest.raises(ValidationError):
            await QuestEngine(db_session).update_progress(quest.id, increment, now)

    @pytest.mark.asyncio
    async def test_unknown_quest(self, db_session, now):
        with pytest.raises(NotFoundError):
            await QuestEngine(db_session).update_progress(uuid.uuid4(), 1, now)

    @pytest.mark.asyncio
    async def test_quest_deleted_before_reread(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        quest = await _make_quest(db_session, profile_id, now)
        await db_session.delete(quest)
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await engine._require_quest(quest.id)


class TestActionsAndCheckIn:
    @pytest.mark.asyncio
    async def test_record_action_advances_matching_quests_only(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        quests = await engine.generate_daily_quests(profile_id, now)
        quest_type = next(q.type for q in quests if q.type != QuestType.DAILY_LOGIN)

        updated = await engine.record_action(profile_id, quest_type, now)

        assert [q.type for q in updated] == [quest_type]
        assert updated[0].progress == 1
        others = await engine.get_active_quests(profile_id, now)
        assert all(q.progress == 0 for q in others if q.type != quest_type)

    @pytest.mark.asyncio
    async def test_record_action_advances_newest_quest_only(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        older = await _make_quest(db_session, profile_id, now, quest_day=(now - timedelta(days=2)).date())
        newer = await _make_quest(db_session, profile_id, now, quest_day=(now - timedelta(days=1)).date())

        updated = await engine.record_action(profile_id, QuestType.VERIFY_ISSUES, now)

        assert [q.id for q in updated] == [newer.id]
        assert updated[0].progress == 1
        assert (await engine.get_quest(older.id)).progress == 0

    @pytest.mark.asyncio
    async def test_record_action_without_matching_quest(self, db_session, profile_id, now):
        assert await QuestEngine(db_session).record_action(profile_id, QuestType.VERIFY_ISSUES, now) == []

    @pytest.mark.asyncio
    async def test_record_action_unknown_type(self, db_session, profile_id, now):
        with pytest.raises(ValidationError):
            await QuestEngine(db_session).record_action(profile_id, "catch_pokemon", now)

    @pytest.mark.asyncio
    async def test_check_in_completes_daily_login(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        check_in = await _quest_of_type(engine, profile_id, QuestType.DAILY_LOGIN, now)

        quest = await engine.complete_login_quest(profile_id, now)

        assert quest.id == check_in.id
        assert quest.status == QuestStatus.COMPLETED
        assert await CoinLedger(db_session).get_balance(profile_id) == check_in.reward_amount

    @pytest.mark.asyncio
    async def test_second_check_in_same_day_returns_none(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        await engine.generate_daily_quests(profile_id, now)
        await engine.complete_login_quest(profile_id, now)

        assert await engine.complete_login_quest(profile_id, now) is None

    @pytest.mark.asyncio
    async def test_overlapping_days_leave_one_check_in(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        await engine.generate_daily_quests(profile_id, now)
        next_day = now + timedelta(days=1)
        second = await _quest_of_type(engine, profile_id, QuestType.DAILY_LOGIN, next_day)

        quest = await engine.complete_login_quest(profile_id, next_day)

        assert quest.id == second.id
        assert await engine.complete_login_quest(profile_id, next_day) is None
        balance = await CoinLedger(db_session).get_balance(profile_id)
        assert balance == second.reward_amount


class TestExpiry:
    @pytest.mark.asyncio
    async def test_sweep_expires_only_stale_active_quests(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        fresh = await engine.generate_daily_quests(profile_id, now)
        spare_type = next(t for t in QuestType if t not in {q.type for q in fresh})
        stale = await _make_quest(
            db_session, profile_id, now, expires_in=timedelta(hours=1), quest_type=spare_type,
        )

        expired = await engine.expire_stale_quests(now + timedelta(hours=2))

        assert expired == 1
        assert (await engine.get_quest(stale.id)).status == QuestStatus.EXPIRED
        statuses = []
        for quest in fresh:
            statuses.append((await engine.get_quest(quest.id)).status)
        assert statuses == [QuestStatus.ACTIVE] * len(fresh)

    @pytest.mark.asyncio
    async def test_active_quests_exclude_expired(self, db_session, profile_id, now):
        engine = QuestEngine(db_session)
        stale = await _make_quest(db_session, profile_id, now, expires_in=timedelta(hours=1))

        active = await engine.get_active_quests(profile_id, now + timedelta(hours=2))

        assert stale.id not in {q.id for q in active}


class TestIsNew:
    def test_more_than_a_day_left_is_new(self, now):
        quest = Quest(expires_at=now + timedelta(hours=30))
        assert is_new(quest, now) is True

    def test_last_day_is_not_new(self, now):
        quest = Quest(expires_at=now + timedelta(hours=24))
        assert is_new(quest, now) is False

    @pytest.mark.asyncio
    async def test_generated_quests_new_on_their_day_only(self, db_session, profile_id, now):
        quests = await QuestEngine(db_session).generate_daily_quests(profile_id, now)

        assert all(is_new(q, now) for q in quests)
        assert not any(is_new(q, now + timedelta(days=1)) for q in quests)
