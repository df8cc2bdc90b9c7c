"""ORM models for profiles, the coin ledger, achievements and quests.

The PostgreSQL DDL lives in alembic/versions; tests build the same schema on
SQLite with ``Base.metadata.create_all``.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from civicquest.db.base import Base
from civicquest.db.types import UTCDateTime
from civicquest.gamification.enums import QuestStatus, QuestType, Rank, ReasonCode


def _str_enum(enum_cls: type[enum.Enum]) -> Enum:
    """Store an enum as its string value in a VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class UserProfile(Base):
    """One row per user; id is issued by the auth provider."""

    __tablename__ = "user_profiles"
    __table_args__ = (
        CheckConstraint("civic_coins >= 0", name="user_profiles_civic_coins_non_negative"),
        CheckConstraint("trainer_level >= 1", name="user_profiles_trainer_level_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    username: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    trainer_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    civic_coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[Rank] = mapped_column(_str_enum(Rank), nullable=False, default=Rank.NOVICE_TRAINER)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# CivicCoin ledger
# ---------------------------------------------------------------------------


class PointTransaction(Base):
    """Immutable CivicCoin ledger entry with optional idempotency key."""

    __tablename__ = "point_transactions"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="point_transactions_amount_non_zero"),
        Index("idx_point_transactions_user_created", "user_id", "created_at"),
        # Idempotency keys are scoped per user
        UniqueConstraint("user_id", "idempotency_key", name="point_transactions_user_key_unique"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[ReasonCode] = mapped_column(_str_enum(ReasonCode), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Global achievement catalog, seeded on startup."""

    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    required_coins: Mapped[int] = mapped_column(Integer, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserAchievement(Base):
    """Per-user unlock state. PRIMARY KEY(user_id, achievement_id) is the upsert key."""

    __tablename__ = "user_achievements"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("achievements.id"), primary_key=True
    )
    unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unlocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    achievement: Mapped[Achievement] = relationship("Achievement", lazy="joined")


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------


class Quest(Base):
    """Time-boxed quest. UNIQUE(user_id, quest_day, type) keeps generation idempotent."""

    __tablename__ = "quests"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_day", "type", name="quests_user_day_type_key"),
        CheckConstraint("required > 0", name="quests_required_positive"),
        CheckConstraint("reward_amount >= 0", name="quests_reward_non_negative"),
        CheckConstraint("progress >= 0 AND progress <= required", name="quests_progress_clamped"),
        Index("idx_quests_user_status", "user_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[QuestType] = mapped_column(_str_enum(QuestType), nullable=False)
    reward_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[QuestStatus] = mapped_column(
        _str_enum(QuestStatus), nullable=False, default=QuestStatus.ACTIVE
    )
    quest_day: Mapped[date] = mapped_column(Date, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
