"""Event bus and Redis forwarder tests."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from civicquest.gamification.enums import Rank, ReasonCode
from civicquest.gamification.events import (
    AchievementUnlocked,
    BalanceChanged,
    BalanceStreamForwarder,
    EventBus,
    RankChanged,
    RedisPubSubForwarder,
)

WHEN = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _balance_event() -> BalanceChanged:
    return BalanceChanged(
        user_id=uuid.uuid4(),
        transaction_id=uuid.uuid4(),
        amount=50,
        reason=ReasonCode.ISSUE_REPORT,
        new_balance=550,
        occurred_at=WHEN,
    )


class TestPayloads:
    def test_balance_changed_payload_is_json_ready(self):
        event = _balance_event()
        payload = event.to_payload()
        assert payload["user_id"] == str(event.user_id)
        assert payload["reason"] == "issue_report"
        assert payload["occurred_at"] == WHEN.isoformat()
        json.dumps(payload)

    def test_balance_changed_from_payload(self):
        event = _balance_event()
        assert BalanceChanged.from_payload(event.to_payload()) == event

    def test_rank_changed_payload_uses_rank_values(self):
        event = RankChanged(
            user_id=uuid.uuid4(),
            old_rank=Rank.NOVICE_TRAINER,
            new_rank=Rank.ISSUE_SCOUT,
            civic_coins=500,
            occurred_at=WHEN,
        )
        payload = event.to_payload()
        assert payload["old_rank"] == "Novice Trainer"
        assert payload["new_rank"] == "Issue Scout"

    def test_channels(self):
        assert BalanceChanged.channel == "pubsub:balance_changed"
        assert RankChanged.channel == "pubsub:rank_up"
        assert AchievementUnlocked.channel == "pubsub:achievement_unlocked"


class TestEventBus:
    @pytest.mark.asyncio
    async def test_dispatches_to_subscribers_of_that_type(self):
        bus = EventBus()
        balance_handler = AsyncMock()
        unlock_handler = AsyncMock()
        bus.subscribe(BalanceChanged, balance_handler)
        bus.subscribe(AchievementUnlocked, unlock_handler)

        event = _balance_event()
        await bus.publish(event)

        balance_handler.assert_awaited_once_with(event)
        unlock_handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_publisher(self):
        bus = EventBus()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        after = AsyncMock()
        bus.subscribe(BalanceChanged, failing)
        bus.subscribe(BalanceChanged, after)

        await bus.publish(_balance_event())

        after.assert_awaited_once()


class TestForwarders:
    @pytest.mark.asyncio
    async def test_pubsub_forwarder_publishes_json(self):
        redis = AsyncMock()
        bus = EventBus()
        RedisPubSubForwarder(redis).attach(bus)

        event = _balance_event()
        await bus.publish(event)

        redis.publish.assert_awaited_once()
        channel, message = redis.publish.call_args.args
        assert channel == "pubsub:balance_changed"
        assert json.loads(message)["new_balance"] == 550

    @pytest.mark.asyncio
    async def test_pubsub_forwarder_without_redis_is_noop(self):
        await RedisPubSubForwarder(None)(_balance_event())

    @pytest.mark.asyncio
    async def test_pubsub_forwarder_swallows_redis_errors(self):
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("down")
        await RedisPubSubForwarder(redis)(_balance_event())

    @pytest.mark.asyncio
    async def test_stream_forwarder_appends_entry(self):
        redis = AsyncMock()
        event = _balance_event()
        await BalanceStreamForwarder(redis, "gamification:balance_changed")(event)

        redis.xadd.assert_awaited_once()
        stream, fields = redis.xadd.call_args.args
        assert stream == "gamification:balance_changed"
        assert fields["event"] == "balance_changed"
        assert BalanceChanged.from_payload(json.loads(fields["data"])) == event
