"""Request/response schemas for profile endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProfileCreateRequest(BaseModel):
    """Create the caller's profile after sign-up."""

    username: str = Field(..., min_length=1, max_length=64)
    avatar_url: str | None = Field(None, max_length=2048)


class ProfileUpdateRequest(BaseModel):
    """Self-edit; omitted fields stay unchanged."""

    username: str | None = Field(None, min_length=1, max_length=64)
    avatar_url: str | None = Field(None, max_length=2048)


class UsernameSuggestionResponse(BaseModel):
    username: str
