"""Profile management business logic."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from civicquest.db.models import UserProfile
from civicquest.db.upsert import insert_for
from civicquest.exceptions import ConflictError, NotFoundError, ValidationError
from civicquest.gamification.achievement_engine import AchievementEngine
from civicquest.gamification.enums import Rank

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from civicquest.gamification.events import EventBus

logger = structlog.get_logger()

USERNAME_RE = re.compile(r"^[a-zA-Z0-9._]{3,20}$")
USERNAME_MAX_LENGTH = 20
USERNAME_TAKEN = "This username is already taken. Please choose another one."
MAX_SUGGESTION_ATTEMPTS = 100


def default_avatar_url(username: str) -> str:
    return f"https://api.dicebear.com/7.x/avataaars/svg?seed={username}"


def validate_username(username: str | None) -> str:
    """Return the username or raise ValidationError."""
    if not username:
        msg = "Username is required"
        raise ValidationError(msg)
    if not USERNAME_RE.match(username):
        msg = (
            "Username must be 3-20 characters long and can only contain "
            "letters, numbers, dots, and underscores"
        )
        raise ValidationError(msg)
    return username


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> UserProfile:
    """Load a profile, refreshing any stale identity-map copy."""
    result = await db.execute(
        select(UserProfile)
        .where(UserProfile.id == user_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        msg = "Profile not found"
        raise NotFoundError(msg)
    return profile


async def create_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    username: str,
    avatar_url: str | None = None,
    events: EventBus | None = None,
    now: datetime | None = None,
) -> tuple[UserProfile, bool]:
    """
    Create the caller's profile exactly once.

    Returns:
        Tuple of (profile, created). A second call for the same id returns the
        existing profile with created=False.

    Raises:
        ValidationError: If the username is malformed.
        ConflictError: If the username belongs to another profile.
    """
    username = validate_username(username)
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = (
        insert_for(db, UserProfile)
        .values(
            id=user_id,
            username=username,
            avatar_url=avatar_url or default_avatar_url(username),
            trainer_level=1,
            civic_coins=0,
            trust_score=0,
            rank=Rank.NOVICE_TRAINER,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["id"])
        .returning(UserProfile.id)
    )
    try:
        inserted = (await db.execute(stmt)).scalar_one_or_none()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(USERNAME_TAKEN) from e

    if inserted is None:
        await db.rollback()
        return await get_profile(db, user_id), False

    engine = AchievementEngine(db, events)
    await engine.ensure_rows(user_id, now)
    # Commits; unlocks the zero-coin tier
    await engine.evaluate(user_id, now)

    logger.info("profile_created", user_id=str(user_id), username=username)
    return await get_profile(db, user_id), True


async def update_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    username: str | None = None,
    avatar_url: str | None = None,
) -> UserProfile:
    """
    Update self-editable profile fields.

    Raises:
        ValidationError: If the new username is malformed.
        ConflictError: If the new username is already taken.
    """
    profile = await get_profile(db, user_id)

    if username is not None and username != profile.username:
        username = validate_username(username)
        result = await db.execute(
            select(UserProfile.id)
            .where(UserProfile.username == username)
            .where(UserProfile.id != user_id)
        )
        if result.scalar_one_or_none() is not None:
            raise ConflictError(USERNAME_TAKEN)
        profile.username = username

    if avatar_url is not None:
        profile.avatar_url = avatar_url

    profile.updated_at = datetime.now(timezone.utc)
    try:
        await db.commit()
    except IntegrityError as e:
        # Lost a race for the same username
        await db.rollback()
        raise ConflictError(USERNAME_TAKEN) from e

    logger.info("profile_updated", user_id=str(user_id))
    return profile


def _candidates(base: str) -> list[str]:
    candidates = [base]
    for counter in range(1, MAX_SUGGESTION_ATTEMPTS):
        suffix = str(counter)
        candidates.append(f"{base[:USERNAME_MAX_LENGTH - len(suffix)]}{suffix}")
    return candidates


async def suggest_username(db: AsyncSession, base: str) -> str:
    """
    Suggest a free username: base, then base1, base2 ... base99.

    Nothing is reserved; the caller still has to claim the name.

    Raises:
        ValidationError: If the base is malformed.
        ConflictError: If every candidate is taken.
    """
    base = validate_username(base)
    candidates = _candidates(base)

    result = await db.execute(
        select(UserProfile.username).where(UserProfile.username.in_(candidates))
    )
    taken = set(result.scalars().all())

    for candidate in candidates:
        if candidate not in taken:
            return candidate

    msg = "Unable to generate unique username"
    raise ConflictError(msg)
