"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from civicquest.gamification.enums import QuestStatus, QuestType, Rank, ReasonCode


# --- Ranks ---


class RankEntry(BaseModel):
    rank: Rank
    trainer_level: int
    min_coins: int


class AllRanksResponse(BaseModel):
    ranks: list[RankEntry]


class RankProgressResponse(BaseModel):
    rank: Rank
    trainer_level: int
    current_threshold: int
    next_rank: Rank | None = None
    next_threshold: int | None = None
    coins_to_next: int
    progress_percent: float


# --- Achievements ---


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    icon: str
    category: str
    required_coins: int


class AllAchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]


class BadgeResponse(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    category: str
    unlocked: bool
    unlocked_at: datetime | None = None
    progress: int | None = None
    required: int | None = None


class EvaluateResponse(BaseModel):
    unlocked: list[str]  # achievement ids unlocked by this call
    badges: list[BadgeResponse]


# --- CivicCoins ---


class AwardRequest(BaseModel):
    amount: StrictInt
    reason: ReasonCode
    idempotency_key: str | None = Field(None, min_length=1, max_length=256)
    description: str | None = Field(None, max_length=256)


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    amount: int
    reason: ReasonCode
    description: str | None = None
    created_at: datetime


class AwardResponse(BaseModel):
    transaction: TransactionResponse
    civic_coins: int
    rank: Rank
    created: bool


class PointHistoryResponse(BaseModel):
    entries: list[TransactionResponse]
    total: int
    page: int
    per_page: int


class ActionRequest(BaseModel):
    action: str
    reference_id: str | None = Field(None, min_length=1, max_length=128)


class ActionResponse(BaseModel):
    award: AwardResponse | None = None
    quests: list[QuestResponse]


# --- Quests ---


class QuestResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    type: QuestType
    reward_amount: int
    progress: int
    required: int
    status: QuestStatus
    expires_at: datetime
    completed_at: datetime | None = None
    is_new: bool


class QuestListResponse(BaseModel):
    quests: list[QuestResponse]


class QuestProgressRequest(BaseModel):
    increment: StrictInt = Field(1, ge=1)


class CheckInResponse(BaseModel):
    quest: QuestResponse | None = None


# --- Profile ---


class ActivityResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    icon: str
    points: int
    timestamp: datetime


class ProfileResponse(BaseModel):
    id: uuid.UUID
    username: str
    avatar_url: str | None = None
    rank: Rank
    trainer_level: int
    civic_coins: int
    trust_score: int
    rank_progress: RankProgressResponse
    badges: list[BadgeResponse]
    recent_activity: list[ActivityResponse]


ActionResponse.model_rebuild()
