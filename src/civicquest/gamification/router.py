"""Gamification API endpoints: ranks, achievements, CivicCoins and quests."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.auth.dependencies import get_current_user_id
from civicquest.config import get_settings
from civicquest.db.models import Achievement, Quest
from civicquest.dependencies import get_db, get_event_bus, get_ledger, get_quest_engine
from civicquest.exceptions import NotFoundError
from civicquest.gamification.achievement_engine import AchievementEngine
from civicquest.gamification.actions import record_user_action
from civicquest.gamification.coin_ledger import AwardResult, CoinLedger
from civicquest.gamification.events import EventBus
from civicquest.gamification.profile_service import get_badges
from civicquest.gamification.quest_engine import QuestEngine, is_new
from civicquest.gamification.rank_thresholds import RANK_THRESHOLDS
from civicquest.gamification.schemas import (
    AchievementResponse,
    ActionRequest,
    ActionResponse,
    AllAchievementsResponse,
    AllRanksResponse,
    AwardRequest,
    AwardResponse,
    BadgeResponse,
    CheckInResponse,
    EvaluateResponse,
    PointHistoryResponse,
    QuestListResponse,
    QuestProgressRequest,
    QuestResponse,
    RankEntry,
    TransactionResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


def _quest_response(quest: Quest, now: datetime) -> QuestResponse:
    return QuestResponse(
        id=quest.id,
        title=quest.title,
        description=quest.description,
        type=quest.type,
        reward_amount=quest.reward_amount,
        progress=quest.progress,
        required=quest.required,
        status=quest.status,
        expires_at=quest.expires_at,
        completed_at=quest.completed_at,
        is_new=is_new(quest, now, get_settings().quest_new_window_hours),
    )


def _award_response(result: AwardResult) -> AwardResponse:
    return AwardResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        civic_coins=result.new_balance,
        rank=result.rank,
        created=result.created,
    )


# ── Public endpoints ──


@router.get("/ranks", response_model=AllRanksResponse)
async def list_ranks():
    """Get the rank ladder."""
    return AllRanksResponse(
        ranks=[
            RankEntry(rank=t["rank"], trainer_level=t["level"], min_coins=t["min_coins"])
            for t in RANK_THRESHOLDS
        ]
    )


@router.get("/achievements", response_model=AllAchievementsResponse)
async def list_achievements(db: AsyncSession = Depends(get_db)):
    """Get the achievement catalog."""
    result = await db.execute(
        select(Achievement).order_by(Achievement.required_coins, Achievement.sort_order)
    )
    return AllAchievementsResponse(
        achievements=[AchievementResponse.model_validate(a) for a in result.scalars()]
    )


# ── CivicCoins ──


@router.post("/points", response_model=AwardResponse)
async def award_points(
    body: AwardRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    ledger: CoinLedger = Depends(get_ledger),
):
    """Award (or correct) CivicCoins for the current user."""
    result = await ledger.award(
        user_id,
        body.amount,
        body.reason,
        idempotency_key=body.idempotency_key,
        description=body.description,
    )
    return _award_response(result)


@router.get("/points/history", response_model=PointHistoryResponse)
async def get_point_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user_id),
    ledger: CoinLedger = Depends(get_ledger),
):
    """Get CivicCoin ledger history (paginated)."""
    entries, total = await ledger.history(user_id, page, per_page)
    return PointHistoryResponse(
        entries=[TransactionResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/actions", response_model=ActionResponse)
async def post_action(
    body: ActionRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: QuestEngine = Depends(get_quest_engine),
):
    """Record an issue report, verification, found-item help or venue visit."""
    now = datetime.now(timezone.utc)
    result = await record_user_action(engine, user_id, body.action, body.reference_id, now)
    return ActionResponse(
        award=_award_response(result.award) if result.award else None,
        quests=[_quest_response(q, now) for q in result.quests],
    )


# ── Achievements ──


@router.post("/achievements/evaluate", response_model=EvaluateResponse)
async def evaluate_achievements(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
):
    """Re-evaluate the current user's achievements."""
    unlocked = await AchievementEngine(db, events).evaluate(user_id)
    badges = await get_badges(db, user_id)
    return EvaluateResponse(
        unlocked=unlocked,
        badges=[BadgeResponse(**b) for b in badges],
    )


# ── Quests ──


@router.get("/quests", response_model=QuestListResponse)
async def get_active_quests(
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: QuestEngine = Depends(get_quest_engine),
):
    """Get the current user's active quests, generating today's set if needed."""
    now = datetime.now(timezone.utc)
    quests = await engine.get_active_quests(user_id, now)
    return QuestListResponse(quests=[_quest_response(q, now) for q in quests])


@router.post("/quests/check-in", response_model=CheckInResponse)
async def check_in(
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: QuestEngine = Depends(get_quest_engine),
):
    """Complete today's Daily Check-in quest, if one is active."""
    now = datetime.now(timezone.utc)
    await engine.generate_daily_quests(user_id, now)
    quest = await engine.complete_login_quest(user_id, now)
    return CheckInResponse(quest=_quest_response(quest, now) if quest else None)


@router.post("/quests/{quest_id}/progress", response_model=QuestResponse)
async def update_quest_progress(
    quest_id: uuid.UUID,
    body: QuestProgressRequest | None = None,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: QuestEngine = Depends(get_quest_engine),
):
    """Advance one of the current user's quests."""
    quest = await engine.get_quest(quest_id)
    if quest is None or quest.user_id != user_id:
        msg = "Quest not found"
        raise NotFoundError(msg)

    now = datetime.now(timezone.utc)
    increment = body.increment if body else 1
    quest = await engine.update_progress(quest_id, increment, now)
    return _quest_response(quest, now)
