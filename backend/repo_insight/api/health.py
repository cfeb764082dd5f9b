"""
Health check endpoints
"""

from fastapi import APIRouter, Depends
from pymongo.database import Database

from repo_insight.config import settings
from repo_insight.core.redis import get_redis
from repo_insight.database.mongo import get_db
from repo_insight.utils.datetime import utc_now

router = APIRouter()


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/health/db")
async def storage_health(db: Database = Depends(get_db)):
    """
    MongoDB and Redis probes.

    Redis only backs the cache and progress events, so a Redis outage
    reports ``degraded`` rather than ``unhealthy``.
    """
    checks = {}
    try:
        db.command("ping")
        checks["database"] = "connected"
    except Exception as exc:
        checks["database"] = f"disconnected: {exc}"

    try:
        get_redis().ping()
        checks["redis"] = "connected"
    except Exception as exc:
        checks["redis"] = f"disconnected: {exc}"

    if checks["database"] != "connected":
        overall = "unhealthy"
    elif checks["redis"] != "connected":
        overall = "degraded"
    else:
        overall = "healthy"

    return {"status": overall, **checks, "timestamp": utc_now().isoformat()}
