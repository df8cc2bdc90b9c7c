"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database with the schema created
from the ORM metadata and the achievement catalog seeded. Redis is absent
unless a test supplies a mock.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

os.environ["CQ_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CQ_JWT_SECRET"] = "test-secret-for-civicquest-tests-only"
os.environ["CQ_ACHIEVEMENT_EVALUATION"] = "inline"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from civicquest.config import get_settings  # noqa: E402
from civicquest.database import close_db, create_all, get_session, init_db  # noqa: E402
from civicquest.gamification.seed import seed_achievements  # noqa: E402

get_settings.cache_clear()

# A fixed mid-day instant keeps quest-day arithmetic deterministic
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh database with the catalog seeded; yields a session on it."""
    await init_db(get_settings().database_url)
    await create_all()

    async for session in get_session():
        await seed_achievements(session)
        yield session

    await close_db()


@pytest_asyncio.fixture
async def profile_id(db_session: AsyncSession, now: datetime) -> uuid.UUID:
    """A freshly created profile with zero CivicCoins."""
    from civicquest.users.service import create_profile

    user_id = uuid.uuid4()
    await create_profile(db_session, user_id, "ash_ketchum", now=now)
    return user_id


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app, sharing the test database."""
    from civicquest.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _auth_header(user_id: uuid.UUID) -> dict[str, str]:
    from civicquest.auth.jwt import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_header():
    """Build an Authorization header for any user id."""
    return _auth_header


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient) -> AsyncClient:
    """Client carrying a token for a user who has created a profile."""
    user_id = uuid.uuid4()
    client.headers.update(_auth_header(user_id))
    response = await client.post("/api/v1/profiles", json={"username": "misty_w"})
    assert response.status_code == 201
    client.user_id = user_id  # type: ignore[attr-defined]
    return client
