"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.config import Settings, get_settings
from civicquest.database import get_session as _get_session
from civicquest.gamification.achievement_engine import AchievementEngine
from civicquest.gamification.coin_ledger import CoinLedger
from civicquest.gamification.events import (
    BalanceChanged,
    BalanceStreamForwarder,
    EventBus,
    RedisPubSubForwarder,
)
from civicquest.gamification.quest_engine import QuestEngine
from civicquest.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client as a FastAPI dependency (None when not initialized)."""
    yield get_redis_or_none()


def build_event_bus(db: AsyncSession, redis: object, settings: Settings) -> EventBus:
    """Wire the per-request event bus.

    Every event is broadcast on Redis pub/sub. BalanceChanged re-evaluates
    achievements in-process, or is handed to the worker in stream mode.
    """
    bus = EventBus()
    RedisPubSubForwarder(redis).attach(bus)
    if settings.achievement_evaluation == "stream" and redis is not None:
        bus.subscribe(BalanceChanged, BalanceStreamForwarder(redis, settings.balance_stream))
    else:
        bus.subscribe(BalanceChanged, AchievementEngine(db, bus).on_balance_changed)
    return bus


async def get_event_bus(
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
) -> EventBus:
    return build_event_bus(db, redis, get_settings())


async def get_ledger(
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> CoinLedger:
    return CoinLedger(db, events)


async def get_quest_engine(
    db: AsyncSession = Depends(get_db),
    ledger: CoinLedger = Depends(get_ledger),
) -> QuestEngine:
    return QuestEngine(db, ledger)
