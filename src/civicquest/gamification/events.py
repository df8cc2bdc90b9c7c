"""Domain events and the in-process bus that dispatches them.

CoinLedger publishes BalanceChanged after every committed award; the
AchievementEngine subscribes to it, either directly (inline mode) or through
the Redis stream consumed by the gamification worker (stream mode).
"""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

from civicquest.gamification.enums import Rank, ReasonCode

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class DomainEvent:
    channel: ClassVar[str] = ""

    def to_payload(self) -> dict[str, Any]:
        return {f.name: _jsonable(getattr(self, f.name)) for f in dataclasses.fields(self)}


@dataclass(frozen=True)
class BalanceChanged(DomainEvent):
    channel: ClassVar[str] = "pubsub:balance_changed"

    user_id: uuid.UUID
    transaction_id: uuid.UUID
    amount: int
    reason: ReasonCode
    new_balance: int
    occurred_at: datetime

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> BalanceChanged:
        return cls(
            user_id=uuid.UUID(payload["user_id"]),
            transaction_id=uuid.UUID(payload["transaction_id"]),
            amount=int(payload["amount"]),
            reason=ReasonCode(payload["reason"]),
            new_balance=int(payload["new_balance"]),
            occurred_at=datetime.fromisoformat(payload["occurred_at"]),
        )


@dataclass(frozen=True)
class RankChanged(DomainEvent):
    channel: ClassVar[str] = "pubsub:rank_up"

    user_id: uuid.UUID
    old_rank: Rank
    new_rank: Rank
    civic_coins: int
    occurred_at: datetime


@dataclass(frozen=True)
class AchievementUnlocked(DomainEvent):
    channel: ClassVar[str] = "pubsub:achievement_unlocked"

    user_id: uuid.UUID
    achievement_id: str
    name: str
    unlocked_at: datetime


Handler = Callable[[Any], Awaitable[None]]


class EventBus:
    """Sequential async dispatch; a failing handler never breaks the publisher."""

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: type[DomainEvent]) -> list[Handler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: DomainEvent) -> None:
        for handler in self.handlers_for(type(event)):
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Event handler %r failed for %s", handler, type(event).__name__, exc_info=True,
                )


class RedisPubSubForwarder:
    """Broadcasts every domain event on its Redis pub/sub channel."""

    def __init__(self, redis: object) -> None:
        self.redis = redis

    def attach(self, bus: EventBus) -> None:
        for event_type in (BalanceChanged, RankChanged, AchievementUnlocked):
            bus.subscribe(event_type, self)

    async def __call__(self, event: DomainEvent) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.publish(event.channel, json.dumps(event.to_payload()))  # type: ignore[attr-defined]
        except Exception:
            logger.warning("Failed to publish %s", event.channel, exc_info=True)


class BalanceStreamForwarder:
    """Appends BalanceChanged events to the Redis stream read by the worker."""

    def __init__(self, redis: object, stream: str) -> None:
        self.redis = redis
        self.stream = stream

    async def __call__(self, event: BalanceChanged) -> None:
        await self.redis.xadd(  # type: ignore[attr-defined]
            self.stream,
            {"event": "balance_changed", "data": json.dumps(event.to_payload())},
        )
