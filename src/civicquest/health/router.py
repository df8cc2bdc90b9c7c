"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from civicquest.config import get_settings
from civicquest.db.models import Achievement
from civicquest.dependencies import get_db, get_redis_dep

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: object = Depends(get_redis_dep),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: checks the database, the achievement catalog and Redis."""
    checks: dict[str, object] = {}

    try:
        result = await db.execute(select(func.count()).select_from(Achievement))
        catalog_size = result.scalar_one()
        checks["database"] = "ok"
        checks["achievements"] = "ok" if catalog_size else "error: catalog not seeded"
    except Exception as exc:
        checks["database"] = f"error: {type(exc).__name__}"

    if redis is None:
        checks["redis"] = "error: not initialized"
    else:
        try:
            await redis.ping()  # type: ignore[attr-defined]
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {type(exc).__name__}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
