"""Quest generation, progress tracking, expiry and reward payout.

State machine per quest::

    active --(progress >= required)--> completed
    active --(now > expires_at)------> expired

Both targets are terminal. Every transition is a single conditional UPDATE
guarded by ``status = 'active'``, so concurrent callers can't double count
past the clamp or pay the completion reward twice.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import case, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.config import Settings, get_settings
from civicquest.db.models import Quest, UserProfile
from civicquest.db.types import UTCDateTime
from civicquest.db.upsert import insert_for
from civicquest.exceptions import NotFoundError, ValidationError
from civicquest.gamification.coin_ledger import CoinLedger
from civicquest.gamification.enums import QuestStatus, QuestType, ReasonCode
from civicquest.gamification.quest_catalog import select_daily_templates

logger = logging.getLogger(__name__)


def is_new(quest: Quest, now: datetime | None = None, window_hours: int = 24) -> bool:
    """True while the quest has more than ``window_hours`` left before expiry.

    Display-only flag kept as the app has always computed it; with the default
    48h lifetime it marks quests generated today.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return quest.expires_at - now > timedelta(hours=window_hours)


def quest_reward_key(quest_id: uuid.UUID) -> str:
    """Idempotency key of a quest's completion award."""
    return f"quest:{quest_id}"


class QuestEngine:
    """Generates and advances time-boxed quests for users."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: CoinLedger | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger or CoinLedger(db)
        self.settings = settings or get_settings()

    async def get_quest(self, quest_id: uuid.UUID) -> Quest | None:
        result = await self.db.execute(
            select(Quest)
            .where(Quest.id == quest_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_quest(self, quest_id: uuid.UUID) -> Quest:
        quest = await self.get_quest(quest_id)
        if quest is None:
            msg = "Quest not found"
            raise NotFoundError(msg)
        return quest

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_daily_quests(
        self,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> list[Quest]:
        """Create today's quests if missing and return today's active ones.

        Idempotent per (user, UTC day, type): the UNIQUE key turns repeated
        or concurrent generation into no-ops. Older active quests of a type
        in today's set are superseded (moved to expired), so a user never
        holds two active quests of one type.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        exists = await self.db.execute(select(UserProfile.id).where(UserProfile.id == user_id))
        if exists.scalar_one_or_none() is None:
            msg = "Profile not found"
            raise NotFoundError(msg)

        day = now.astimezone(timezone.utc).date()
        day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        expires_at = day_start + timedelta(hours=self.settings.quest_lifetime_hours)

        await self.expire_stale_quests(now, user_id=user_id, commit=False)

        templates = select_daily_templates(user_id, day, self.settings.daily_quest_count)
        for template in templates:
            stmt = insert_for(self.db, Quest).values(
                id=uuid.uuid4(),
                user_id=user_id,
                title=template["title"],
                description=template["description"],
                type=template["type"],
                reward_amount=template["reward_amount"],
                progress=0,
                required=template["required"],
                status=QuestStatus.ACTIVE,
                quest_day=day,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["user_id", "quest_day", "type"])
            await self.db.execute(stmt)

        superseded = await self.db.execute(
            update(Quest)
            .where(
                Quest.user_id == user_id,
                Quest.status == QuestStatus.ACTIVE,
                Quest.quest_day < day,
                Quest.type.in_([template["type"] for template in templates]),
            )
            .values(status=QuestStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if superseded.rowcount:
            logger.info("Superseded %d quests from earlier days (user=%s)", superseded.rowcount, user_id)

        await self.db.commit()

        result = await self.db.execute(
            select(Quest)
            .where(
                Quest.user_id == user_id,
                Quest.quest_day == day,
                Quest.status == QuestStatus.ACTIVE,
                Quest.expires_at >= now,
            )
            .order_by(Quest.created_at, Quest.type)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_active_quests(
        self,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> list[Quest]:
        """All of the user's active quests, generating today's set first."""
        if now is None:
            now = datetime.now(timezone.utc)

        await self.generate_daily_quests(user_id, now)

        result = await self.db.execute(
            select(Quest)
            .where(
                Quest.user_id == user_id,
                Quest.status == QuestStatus.ACTIVE,
                Quest.expires_at >= now,
            )
            .order_by(Quest.created_at.desc(), Quest.type)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def update_progress(
        self,
        quest_id: uuid.UUID,
        increment: int = 1,
        now: datetime | None = None,
    ) -> Quest:
        """Advance an active quest by ``increment``, clamped to ``required``.

        The call that moves the quest to completed also awards its
        reward_amount (reason quest_completion) in the same transaction.
        Calls on completed or expired quests change nothing.
        """
        if isinstance(increment, bool) or not isinstance(increment, int) or increment < 1:
            msg = "Increment must be a positive integer"
            raise ValidationError(msg)
        if now is None:
            now = datetime.now(timezone.utc)

        new_progress = Quest.progress + increment
        reaches_goal = new_progress >= Quest.required
        stmt = (
            update(Quest)
            .where(
                Quest.id == quest_id,
                Quest.status == QuestStatus.ACTIVE,
                Quest.expires_at >= now,
            )
            .values(
                progress=case((reaches_goal, Quest.required), else_=new_progress),
                status=case(
                    (reaches_goal, QuestStatus.COMPLETED.value),
                    else_=QuestStatus.ACTIVE.value,
                ),
                completed_at=case(
                    (reaches_goal, literal(now, UTCDateTime())),
                    else_=Quest.completed_at,
                ),
                updated_at=now,
            )
            .returning(Quest.status, Quest.user_id, Quest.reward_amount, Quest.title)
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(stmt)).one_or_none()

        if row is None:
            return await self._resolve_unmatched(quest_id, now)

        if row.status == QuestStatus.COMPLETED:
            logger.info("Quest %s completed (user=%s)", quest_id, row.user_id)
            if row.reward_amount > 0:
                await self.ledger.award(
                    row.user_id,
                    row.reward_amount,
                    ReasonCode.QUEST_COMPLETION,
                    idempotency_key=quest_reward_key(quest_id),
                    description=f'Completed quest: "{row.title}"',
                    now=now,
                )
        await self.db.commit()

        return await self._require_quest(quest_id)

    async def _resolve_unmatched(self, quest_id: uuid.UUID, now: datetime) -> Quest:
        """Explain why the guarded UPDATE matched nothing."""
        quest = await self._require_quest(quest_id)

        if quest.status == QuestStatus.ACTIVE and quest.expires_at < now:
            await self.db.execute(
                update(Quest)
                .where(Quest.id == quest_id, Quest.status == QuestStatus.ACTIVE)
                .values(status=QuestStatus.EXPIRED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            logger.info("Quest %s expired before progress was recorded", quest_id)
            quest = await self._require_quest(quest_id)

        return quest

    async def record_action(
        self,
        user_id: uuid.UUID,
        quest_type: QuestType | str,
        now: datetime | None = None,
    ) -> list[Quest]:
        """Apply one unit of progress to the newest active quest of ``quest_type``.

        Returns the advanced quest in a list, or an empty list when the user
        has no active quest of that type.
        """
        try:
            quest_type = QuestType(quest_type)
        except ValueError:
            msg = f"Unknown quest type: {quest_type!r}"
            raise ValidationError(msg) from None
        if now is None:
            now = datetime.now(timezone.utc)

        result = await self.db.execute(
            select(Quest.id)
            .where(
                Quest.user_id == user_id,
                Quest.type == quest_type,
                Quest.status == QuestStatus.ACTIVE,
                Quest.expires_at >= now,
            )
            .order_by(Quest.quest_day.desc(), Quest.created_at.desc())
            .limit(1)
        )
        quest_id = result.scalar_one_or_none()
        if quest_id is None:
            return []
        return [await self.update_progress(quest_id, 1, now)]

    async def complete_login_quest(
        self,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> Quest | None:
        """Check in on the newest active Daily Check-in quest, if there is one."""
        if now is None:
            now = datetime.now(timezone.utc)

        result = await self.db.execute(
            select(Quest.id)
            .where(
                Quest.user_id == user_id,
                Quest.type == QuestType.DAILY_LOGIN,
                Quest.status == QuestStatus.ACTIVE,
                Quest.expires_at >= now,
            )
            .order_by(Quest.quest_day.desc(), Quest.created_at.desc())
            .limit(1)
        )
        quest_id = result.scalar_one_or_none()
        if quest_id is None:
            logger.debug("No active check-in quest for %s", user_id)
            return None
        return await self.update_progress(quest_id, 1, now)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def expire_stale_quests(
        self,
        now: datetime | None = None,
        user_id: uuid.UUID | None = None,
        *,
        commit: bool = True,
    ) -> int:
        """Move every active quest past its expires_at to expired."""
        if now is None:
            now = datetime.now(timezone.utc)

        stmt = (
            update(Quest)
            .where(Quest.status == QuestStatus.ACTIVE, Quest.expires_at < now)
            .values(status=QuestStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if user_id is not None:
            stmt = stmt.where(Quest.user_id == user_id)

        result = await self.db.execute(stmt)
        if commit:
            await self.db.commit()
        return result.rowcount or 0
