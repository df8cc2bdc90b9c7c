"""Profile snapshot: base profile + rank progress + badges + recent activity."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.config import get_settings
from civicquest.db.models import Achievement, PointTransaction, UserAchievement, UserProfile
from civicquest.exceptions import NotFoundError
from civicquest.gamification.enums import ReasonCode
from civicquest.gamification.rank_thresholds import rank_info

# Icon names shown next to each activity row in the app.
ACTIVITY_ICONS: dict[ReasonCode, str] = {
    ReasonCode.ISSUE_REPORT: "megaphone",
    ReasonCode.ISSUE_VERIFICATION: "checkmark-circle",
    ReasonCode.QUEST_COMPLETION: "flag",
    ReasonCode.BADGE_EARNED: "ribbon",
    ReasonCode.RANK_UP: "trending-up",
    ReasonCode.OTHER: "sparkles",
}


def _activity_entry(tx: PointTransaction) -> dict[str, Any]:
    return {
        "id": tx.id,
        "title": tx.reason.value,
        "description": f"Earned {tx.amount} CivicCoins",
        "icon": ACTIVITY_ICONS.get(tx.reason, "sparkles"),
        "points": tx.amount,
        "timestamp": tx.created_at,
    }


async def get_badges(db: AsyncSession, user_id: uuid.UUID) -> list[dict[str, Any]]:
    """Every catalog achievement with the user's state; missing rows read as locked."""
    result = await db.execute(
        select(Achievement, UserAchievement)
        .outerjoin(
            UserAchievement,
            and_(
                UserAchievement.achievement_id == Achievement.id,
                UserAchievement.user_id == user_id,
            ),
        )
        .order_by(Achievement.required_coins, Achievement.sort_order)
    )

    badges = []
    for achievement, state in result.unique().all():
        badges.append({
            "id": achievement.id,
            "name": achievement.name,
            "description": achievement.description,
            "icon": achievement.icon,
            "category": achievement.category,
            "unlocked": bool(state and state.unlocked),
            "unlocked_at": state.unlocked_at if state else None,
            "progress": state.progress if state else 0,
            "required": state.required if state else achievement.required_coins,
        })
    return badges


async def get_recent_activity(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 10,
) -> list[dict[str, Any]]:
    result = await db.execute(
        select(PointTransaction)
        .where(PointTransaction.user_id == user_id)
        .order_by(PointTransaction.created_at.desc())
        .limit(limit)
    )
    return [_activity_entry(tx) for tx in result.scalars().all()]


async def get_user_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    activity_limit: int | None = None,
) -> dict[str, Any]:
    """Compose the full profile view. Read-only."""
    if activity_limit is None:
        activity_limit = get_settings().recent_activity_limit

    result = await db.execute(
        select(UserProfile)
        .where(UserProfile.id == user_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        msg = "Profile not found"
        raise NotFoundError(msg)

    return {
        "id": profile.id,
        "username": profile.username,
        "avatar_url": profile.avatar_url,
        "rank": profile.rank,
        "trainer_level": profile.trainer_level,
        "civic_coins": profile.civic_coins,
        "trust_score": profile.trust_score,
        "rank_progress": rank_info(profile.civic_coins),
        "badges": await get_badges(db, user_id),
        "recent_activity": await get_recent_activity(db, user_id, activity_limit),
    }
