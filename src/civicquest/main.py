"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from civicquest.config import get_settings
from civicquest.database import close_db, get_session, init_db
from civicquest.gamification.router import router as gamification_router
from civicquest.gamification.seed import seed_achievements
from civicquest.health.router import router as health_router
from civicquest.middleware import setup_middleware
from civicquest.redis_client import close_redis, init_redis
from civicquest.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed the achievement catalog (idempotent)
    try:
        async for db in get_session():
            await seed_achievements(db)
    except Exception:
        logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CivicQuest API",
        description="Gamification backend for CivicQuest: CivicCoins, trainer ranks, achievements and quests",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(gamification_router)

    return app


app = create_app()
