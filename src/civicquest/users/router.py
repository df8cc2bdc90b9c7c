"""Profile router: all /api/v1/profiles/* endpoints."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.auth.dependencies import get_current_user_id
from civicquest.dependencies import get_db, get_event_bus
from civicquest.gamification.events import EventBus
from civicquest.gamification.profile_service import get_user_profile
from civicquest.gamification.schemas import ProfileResponse
from civicquest.users.schemas import (
    ProfileCreateRequest,
    ProfileUpdateRequest,
    UsernameSuggestionResponse,
)
from civicquest.users.service import (
    create_profile,
    suggest_username,
    update_profile,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/profiles", tags=["Profiles"])


@router.post("", response_model=ProfileResponse, status_code=201)
async def create_my_profile(
    body: ProfileCreateRequest,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
) -> ProfileResponse:
    """Create the caller's profile; repeating the call returns it unchanged."""
    _, created = await create_profile(
        db, user_id, body.username, avatar_url=body.avatar_url, events=events,
    )
    if not created:
        response.status_code = 200
    return ProfileResponse(**await get_user_profile(db, user_id))


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Get own profile with rank progress, badges and recent activity."""
    return ProfileResponse(**await get_user_profile(db, user_id))


@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Update username and/or avatar_url."""
    await update_profile(db, user_id, username=body.username, avatar_url=body.avatar_url)
    return ProfileResponse(**await get_user_profile(db, user_id))


@router.get("/username-suggestion", response_model=UsernameSuggestionResponse)
async def get_username_suggestion(
    base: str = Query(..., min_length=1, max_length=64),
    _user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UsernameSuggestionResponse:
    """Suggest a free username derived from ``base``."""
    username = await suggest_username(db, base)
    logger.debug("username_suggested", base=base, username=username)
    return UsernameSuggestionResponse(username=username)
