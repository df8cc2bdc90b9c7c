"""Achievement engine: evaluates coin-threshold unlocks.

Unlocks are monotonic: every write is an upsert guarded by
``WHERE unlocked IS false``, so concurrent evaluations can neither unlock
twice nor move unlocked_at once it is set.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.db.models import Achievement, UserAchievement, UserProfile
from civicquest.db.upsert import insert_for
from civicquest.exceptions import NotFoundError
from civicquest.gamification.events import AchievementUnlocked, BalanceChanged, EventBus

logger = logging.getLogger(__name__)


class AchievementEngine:
    """Evaluates achievement unlocks for a user's CivicCoin balance."""

    def __init__(self, db: AsyncSession, events: EventBus | None = None) -> None:
        self.db = db
        self.events = events
        self._catalog: list[Achievement] | None = None

    async def _load_catalog(self) -> list[Achievement]:
        """Load and cache the catalog in ascending required_coins order."""
        if self._catalog is None:
            result = await self.db.execute(
                select(Achievement).order_by(Achievement.required_coins, Achievement.sort_order)
            )
            self._catalog = list(result.scalars().all())
        return self._catalog

    async def _get_balance(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(UserProfile.civic_coins).where(UserProfile.id == user_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            msg = "Profile not found"
            raise NotFoundError(msg)
        return balance

    async def evaluate(self, user_id: uuid.UUID, now: datetime | None = None) -> list[str]:
        """Unlock every achievement the balance qualifies for.

        Returns ids unlocked by THIS call, in ascending required_coins order.
        Re-running with an unchanged balance returns [] and changes nothing
        on unlocked rows.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        balance = await self._get_balance(user_id)
        catalog = await self._load_catalog()

        unlocked: list[Achievement] = []
        for achievement in catalog:
            if achievement.required_coins <= balance:
                if await self._unlock(user_id, achievement, balance, now):
                    unlocked.append(achievement)
            else:
                await self._track_progress(user_id, achievement, balance, now)

        await self.db.commit()

        for achievement in unlocked:
            logger.info("Achievement unlocked: %s (user=%s)", achievement.id, user_id)
            if self.events is not None:
                await self.events.publish(AchievementUnlocked(
                    user_id=user_id,
                    achievement_id=achievement.id,
                    name=achievement.name,
                    unlocked_at=now,
                ))

        return [a.id for a in unlocked]

    async def _unlock(
        self,
        user_id: uuid.UUID,
        achievement: Achievement,
        balance: int,
        now: datetime,
    ) -> bool:
        """Insert an unlocked row or flip a locked one. True if this call unlocked it."""
        stmt = insert_for(self.db, UserAchievement).values(
            user_id=user_id,
            achievement_id=achievement.id,
            unlocked=True,
            unlocked_at=now,
            progress=balance,
            required=achievement.required_coins,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "achievement_id"],
            set_={
                "unlocked": True,
                "unlocked_at": stmt.excluded.unlocked_at,
                "progress": stmt.excluded.progress,
                "required": stmt.excluded.required,
                "updated_at": stmt.excluded.updated_at,
            },
            where=UserAchievement.unlocked.is_(False),
        ).returning(UserAchievement.achievement_id)

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _track_progress(
        self,
        user_id: uuid.UUID,
        achievement: Achievement,
        balance: int,
        now: datetime,
    ) -> None:
        """Refresh progress on a still-locked row; unlocked rows are left alone."""
        stmt = insert_for(self.db, UserAchievement).values(
            user_id=user_id,
            achievement_id=achievement.id,
            unlocked=False,
            unlocked_at=None,
            progress=max(0, balance),
            required=achievement.required_coins,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "achievement_id"],
            set_={
                "progress": stmt.excluded.progress,
                "required": stmt.excluded.required,
                "updated_at": stmt.excluded.updated_at,
            },
            where=UserAchievement.unlocked.is_(False),
        )
        await self.db.execute(stmt)

    async def ensure_rows(self, user_id: uuid.UUID, now: datetime | None = None) -> int:
        """Create a locked row for every catalog entry the user has none for."""
        if now is None:
            now = datetime.now(timezone.utc)

        catalog = await self._load_catalog()
        for achievement in catalog:
            stmt = insert_for(self.db, UserAchievement).values(
                user_id=user_id,
                achievement_id=achievement.id,
                unlocked=False,
                unlocked_at=None,
                progress=0,
                required=achievement.required_coins,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
            await self.db.execute(stmt)

        await self.db.flush()
        return len(catalog)

    async def get_user_achievements(self, user_id: uuid.UUID) -> list[UserAchievement]:
        result = await self.db.execute(
            select(UserAchievement)
            .join(Achievement, UserAchievement.achievement_id == Achievement.id)
            .where(UserAchievement.user_id == user_id)
            .order_by(Achievement.required_coins, Achievement.sort_order)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().unique().all())

    async def on_balance_changed(self, event: BalanceChanged) -> None:
        """Event-bus subscriber: re-evaluate after every committed award."""
        awarded = await self.evaluate(event.user_id)
        if awarded:
            logger.info("Unlocked after balance change: %s (user=%s)", awarded, event.user_id)
