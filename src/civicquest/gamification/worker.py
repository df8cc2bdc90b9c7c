"""Gamification arq worker.

Consumes BalanceChanged events from the Redis stream (stream mode) and
re-evaluates achievements, and sweeps expired quests on a schedule.

Messages are acknowledged only after a successful evaluation; anything left
un-acked is re-read from the pending list and retried. Evaluation is
idempotent, so a retry never unlocks twice.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta

import redis.asyncio as aioredis
from arq import cron, func
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civicquest.config import get_settings
from civicquest.database import close_db, get_engine, init_db
from civicquest.gamification.achievement_engine import AchievementEngine
from civicquest.gamification.events import BalanceChanged, EventBus, RedisPubSubForwarder
from civicquest.gamification.quest_engine import QuestEngine

logger = logging.getLogger(__name__)

CONSUMER_GROUP = "achievement-evaluators"


async def ensure_consumer_group(redis_client: aioredis.Redis, stream: str) -> None:
    """Create the consumer group (idempotent)."""
    try:
        await redis_client.xgroup_create(stream, CONSUMER_GROUP, id="0", mkstream=True)
        logger.info("Created consumer group %s for %s", CONSUMER_GROUP, stream)
    except aioredis.ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise


def parse_balance_event(raw_data: dict) -> BalanceChanged:
    """Decode a stream entry written by BalanceStreamForwarder."""
    return BalanceChanged.from_payload(json.loads(raw_data["data"]))


async def process_messages(
    redis_client: aioredis.Redis,
    session_factory: async_sessionmaker[AsyncSession],
    stream: str,
    messages: list,
) -> int:
    """Evaluate each message and ack the ones that succeeded. Returns the ack count."""
    acked = 0
    for msg_id, raw_data in messages:
        try:
            event = parse_balance_event(raw_data)
        except (KeyError, ValueError, TypeError):
            # Malformed entries can never succeed; drop them
            logger.error("Discarding malformed message %s from %s: %r", msg_id, stream, raw_data)
            await redis_client.xack(stream, CONSUMER_GROUP, msg_id)
            acked += 1
            continue

        try:
            async with session_factory() as db:
                bus = EventBus()
                RedisPubSubForwarder(redis_client).attach(bus)
                engine = AchievementEngine(db, bus)
                unlocked = await engine.evaluate(event.user_id)
            if unlocked:
                logger.info("Unlocked %s (user=%s, event=%s)", unlocked, event.user_id, msg_id)
        except Exception:
            logger.exception("Failed to process %s from %s; left pending", msg_id, stream)
            continue

        await redis_client.xack(stream, CONSUMER_GROUP, msg_id)
        acked += 1
    return acked


async def worker_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await ensure_consumer_group(redis_client, settings.balance_stream)

    ctx["redis_client"] = redis_client
    ctx["session_factory"] = async_sessionmaker(
        get_engine(), class_=AsyncSession, expire_on_commit=False,
    )

    # ctx["redis"] is arq's own pool; the fixed job id keeps one consumer per worker
    await ctx["redis"].enqueue_job(
        "consume_balance_events", _job_id=f"consume:{settings.worker_consumer_name}",
    )
    logger.info("Gamification worker started")


async def worker_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis_client")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Gamification worker shut down")


async def consume_balance_events(ctx: dict) -> None:  # type: ignore[type-arg]
    """Main consumer loop: pending entries first, then new ones."""
    settings = get_settings()
    redis_client: aioredis.Redis = ctx["redis_client"]
    session_factory = ctx["session_factory"]
    stream = settings.balance_stream
    consumer_name = settings.worker_consumer_name

    read_pending = True
    while True:
        try:
            events = await redis_client.xreadgroup(
                groupname=CONSUMER_GROUP,
                consumername=consumer_name,
                streams={stream: "0" if read_pending else ">"},
                count=100,
                block=None if read_pending else 5000,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            await asyncio.sleep(1)
            continue

        messages = [m for _, batch in events or [] for m in batch]
        if not messages:
            read_pending = False
            continue

        acked = await process_messages(redis_client, session_factory, stream, messages)
        if acked < len(messages):
            # Back off, then retry from the pending list
            read_pending = True
            await asyncio.sleep(1)


async def expire_quests(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled task: move quests past expires_at to expired."""
    session_factory = ctx["session_factory"]
    async with session_factory() as db:
        expired = await QuestEngine(db).expire_stale_quests()
    if expired:
        logger.info("Expired %d quests", expired)
    return expired


def _sweep_minutes() -> set[int]:
    interval = max(1, min(60, get_settings().quest_expiry_interval_minutes))
    return set(range(0, 60, interval))


class WorkerSettings:
    """arq worker settings for the gamification consumer."""

    # consume_balance_events runs for the life of the worker
    functions = [func(consume_balance_events, timeout=timedelta(days=365))]
    cron_jobs = [cron(expire_quests, minute=_sweep_minutes(), run_at_startup=True)]
    on_startup = worker_startup
    on_shutdown = worker_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4
    job_timeout = 300
    allow_abort_jobs = True
