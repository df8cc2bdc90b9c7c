"""Integration tests for /api/v1/profiles endpoints."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from civicquest.gamification.seed import ACHIEVEMENT_SEED_DATA


class TestCreateProfile:
    @pytest.mark.asyncio
    async def test_create_returns_snapshot(self, authed_client: AsyncClient):
        response = await authed_client.get("/api/v1/profiles/me")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(authed_client.user_id)
        assert data["username"] == "misty_w"
        assert data["civic_coins"] == 0
        assert data["rank"] == "Novice Trainer"
        assert data["trainer_level"] == 1
        assert data["rank_progress"]["next_rank"] == "Issue Scout"
        assert len(data["badges"]) == len(ACHIEVEMENT_SEED_DATA)
        assert data["recent_activity"] == []

    @pytest.mark.asyncio
    async def test_repeat_create_is_idempotent(self, authed_client: AsyncClient):
        response = await authed_client.post("/api/v1/profiles", json={"username": "other_name"})
        assert response.status_code == 200
        assert response.json()["username"] == "misty_w"

    @pytest.mark.asyncio
    async def test_username_taken(self, authed_client: AsyncClient, auth_header):
        response = await authed_client.post(
            "/api/v1/profiles",
            json={"username": "misty_w"},
            headers=auth_header(uuid.uuid4()),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    @pytest.mark.asyncio
    async def test_invalid_username(self, client: AsyncClient, auth_header):
        response = await client.post(
            "/api/v1/profiles", json={"username": "no spaces"}, headers=auth_header(uuid.uuid4()),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/profiles", json={"username": "brock_p"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_bad_token(self, client: AsyncClient):
        response = await client.get("/api/v1/profiles/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestMyProfile:
    @pytest.mark.asyncio
    async def test_missing_profile(self, client: AsyncClient, auth_header):
        response = await client.get("/api/v1/profiles/me", headers=auth_header(uuid.uuid4()))
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_update(self, authed_client: AsyncClient):
        response = await authed_client.patch(
            "/api/v1/profiles/me",
            json={"username": "misty.w", "avatar_url": "https://img.example/misty.png"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "misty.w"
        assert data["avatar_url"] == "https://img.example/misty.png"

    @pytest.mark.asyncio
    async def test_update_to_taken_username(self, authed_client: AsyncClient, auth_header):
        other = await authed_client.post(
            "/api/v1/profiles", json={"username": "gary_oak"}, headers=auth_header(uuid.uuid4()),
        )
        assert other.status_code == 201

        response = await authed_client.patch("/api/v1/profiles/me", json={"username": "gary_oak"})
        assert response.status_code == 409


class TestUsernameSuggestion:
    @pytest.mark.asyncio
    async def test_taken_base_gets_suffix(self, authed_client: AsyncClient):
        response = await authed_client.get("/api/v1/profiles/username-suggestion", params={"base": "misty_w"})
        assert response.status_code == 200
        assert response.json()["username"] == "misty_w1"

    @pytest.mark.asyncio
    async def test_free_base(self, authed_client: AsyncClient):
        response = await authed_client.get("/api/v1/profiles/username-suggestion", params={"base": "togepi"})
        assert response.json()["username"] == "togepi"

    @pytest.mark.asyncio
    async def test_invalid_base(self, authed_client: AsyncClient):
        response = await authed_client.get("/api/v1/profiles/username-suggestion", params={"base": "a b"})
        assert response.status_code == 422
