"""Health check endpoint.

Learn: GET /health reports each dependency separately. The database is
required, Redis only backs rate limiting, so "degraded" means the API
still answers but one of them is unreachable.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from taskhub import __version__
from taskhub.cache.redis import get_redis

router = APIRouter()


async def _check_database(engine: AsyncEngine) -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {e}"
    return "ok"


async def _check_redis(request: Request) -> str:
    redis = get_redis(request)
    if redis is None:
        return "error: not connected"
    try:
        await redis.ping()
    except Exception as e:
        return f"error: {e}"
    return "ok"


@router.get("/health")
async def health_check(request: Request):
    checks = {
        "server": "ok",
        "database": await _check_database(request.app.state.engine),
        "redis": await _check_redis(request),
    }
    status = "healthy" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": status,
        "version": __version__,
        "environment": request.app.state.settings.environment,
        **checks,
    }
