"""CivicCoin ledger: idempotent awards with an atomic balance increment."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.db.models import PointTransaction, UserProfile
from civicquest.exceptions import NotFoundError, ValidationError
from civicquest.gamification.enums import Rank, ReasonCode
from civicquest.gamification.events import BalanceChanged, EventBus, RankChanged
from civicquest.gamification.rank_thresholds import rank_case, rank_for, trainer_level_case

logger = logging.getLogger(__name__)

# Standard awards for UI actions. Must match the amounts shown in the app.
REWARD_AMOUNTS: dict[ReasonCode, int] = {
    ReasonCode.ISSUE_REPORT: 50,
    ReasonCode.ISSUE_VERIFICATION: 20,
}


@dataclass
class AwardResult:
    transaction: PointTransaction
    new_balance: int
    rank: Rank
    created: bool


def coerce_reason(reason: ReasonCode | str) -> ReasonCode:
    """Accept a ReasonCode or its string value; anything else is invalid."""
    try:
        return ReasonCode(reason)
    except ValueError:
        msg = f"Unknown reason code: {reason!r}"
        raise ValidationError(msg) from None


def validate_amount(amount: object) -> int:
    # bool is an int subclass; True is not a coin amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        msg = "Amount must be an integer"
        raise ValidationError(msg)
    if amount == 0:
        msg = "Amount must not be zero"
        raise ValidationError(msg)
    return amount


class CoinLedger:
    """Records point transactions and keeps user_profiles.civic_coins in sync."""

    def __init__(self, db: AsyncSession, events: EventBus | None = None) -> None:
        self.db = db
        self.events = events

    async def get_transaction_by_key(
        self, user_id: uuid.UUID, idempotency_key: str,
    ) -> PointTransaction | None:
        """The user's transaction recorded under ``idempotency_key``, if any."""
        result = await self.db.execute(
            select(PointTransaction).where(
                PointTransaction.user_id == user_id,
                PointTransaction.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: uuid.UUID) -> int:
        """Current civic_coins; raises NotFoundError for unknown users."""
        result = await self.db.execute(
            select(UserProfile.civic_coins).where(UserProfile.id == user_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            msg = "Profile not found"
            raise NotFoundError(msg)
        return balance

    async def award(
        self,
        user_id: uuid.UUID,
        amount: int,
        reason: ReasonCode | str,
        *,
        idempotency_key: str | None = None,
        description: str | None = None,
        now: datetime | None = None,
    ) -> AwardResult:
        """Award (or, with a negative amount, correct) CivicCoins.

        1. Insert into point_transactions
        2. Atomically increment user_profiles.civic_coins and re-derive rank
        3. Commit both together, or neither
        4. Publish BalanceChanged (and RankChanged on a rank change)

        A key the same user already used returns the original transaction with
        ``created=False`` and changes nothing.
        """
        amount = validate_amount(amount)
        reason_code = coerce_reason(reason)

        if idempotency_key:
            existing = await self.get_transaction_by_key(user_id, idempotency_key)
            if existing is not None:
                return await self._duplicate(existing)

        if now is None:
            now = datetime.now(timezone.utc)

        entry = PointTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            amount=amount,
            reason=reason_code,
            description=description,
            idempotency_key=idempotency_key,
            created_at=now,
        )
        self.db.add(entry)

        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            # Race condition: another session recorded the same key first
            if idempotency_key:
                existing = await self.get_transaction_by_key(user_id, idempotency_key)
                if existing is not None:
                    return await self._duplicate(existing)
            await self.get_balance(user_id)  # NotFoundError for a missing profile
            raise

        new_coins = UserProfile.civic_coins + amount
        stmt = (
            update(UserProfile)
            .where(UserProfile.id == user_id)
            .values(
                civic_coins=new_coins,
                rank=rank_case(new_coins),
                trainer_level=trainer_level_case(new_coins),
                updated_at=now,
            )
            .returning(UserProfile.civic_coins)
            .execution_options(synchronize_session=False)
        )
        try:
            new_balance = (await self.db.execute(stmt)).scalar_one_or_none()
        except IntegrityError as exc:
            await self.db.rollback()
            msg = "Not enough CivicCoins for this correction"
            raise ValidationError(msg) from exc

        if new_balance is None:
            await self.db.rollback()
            msg = "Profile not found"
            raise NotFoundError(msg)

        await self.db.commit()

        old_rank = rank_for(new_balance - amount)
        new_rank = rank_for(new_balance)
        logger.info(
            "Awarded %d CivicCoins to %s (%s), balance %d",
            amount, user_id, reason_code.value, new_balance,
        )

        await self._publish(BalanceChanged(
            user_id=user_id,
            transaction_id=entry.id,
            amount=amount,
            reason=reason_code,
            new_balance=new_balance,
            occurred_at=now,
        ))
        if new_rank != old_rank:
            await self._publish(RankChanged(
                user_id=user_id,
                old_rank=old_rank,
                new_rank=new_rank,
                civic_coins=new_balance,
                occurred_at=now,
            ))

        return AwardResult(transaction=entry, new_balance=new_balance, rank=new_rank, created=True)

    async def _duplicate(self, existing: PointTransaction) -> AwardResult:
        balance = await self.get_balance(existing.user_id)
        return AwardResult(
            transaction=existing, new_balance=balance, rank=rank_for(balance), created=False,
        )

    async def _publish(self, event: BalanceChanged | RankChanged) -> None:
        if self.events is not None:
            await self.events.publish(event)

    # ------------------------------------------------------------------
    # Ledger reads and reconciliation
    # ------------------------------------------------------------------

    async def balance_from_ledger(self, user_id: uuid.UUID) -> int:
        """Sum of every transaction for the user (the source of truth)."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(PointTransaction.amount), 0))
            .where(PointTransaction.user_id == user_id)
        )
        return int(result.scalar_one())

    async def reconcile(self, user_id: uuid.UUID) -> int:
        """Reset civic_coins (and rank) to the ledger sum in one statement."""
        before = await self.get_balance(user_id)

        ledger_sum = (
            select(func.coalesce(func.sum(PointTransaction.amount), 0))
            .where(PointTransaction.user_id == user_id)
            .scalar_subquery()
        )
        stmt = (
            update(UserProfile)
            .where(UserProfile.id == user_id)
            .values(
                civic_coins=ledger_sum,
                rank=rank_case(ledger_sum),
                trainer_level=trainer_level_case(ledger_sum),
                updated_at=datetime.now(timezone.utc),
            )
            .returning(UserProfile.civic_coins)
            .execution_options(synchronize_session=False)
        )
        after = (await self.db.execute(stmt)).scalar_one()
        await self.db.commit()

        if after != before:
            logger.warning("Reconciled CivicCoins for %s: %d -> %d", user_id, before, after)
        return after

    async def history(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[PointTransaction], int]:
        """Paginated ledger entries, newest first."""
        offset = (page - 1) * per_page

        total_result = await self.db.execute(
            select(func.count()).select_from(PointTransaction).where(PointTransaction.user_id == user_id)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc())
            .offset(offset)
            .limit(per_page)
        )
        return list(result.scalars().all()), total
