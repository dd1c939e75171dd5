"""Redis connection.

Learn: Redis backs the rate limiter only. It is optional: if it is not
reachable at startup the app still serves requests, just without
rate limiting.

The client lives on app.state.redis (None when unavailable), set by the
lifespan in main.py, so each app built by create_app() owns its own.
"""

from typing import Optional

import redis.asyncio as aioredis
from starlette.requests import Request


async def connect_redis(url: str) -> aioredis.Redis:
    """Open a client and verify it answers. Raises if Redis is unreachable."""
    client = aioredis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    return client


async def close_redis(client: Optional[aioredis.Redis]) -> None:
    if client is not None:
        await client.aclose()


def get_redis(request: Request) -> Optional[aioredis.Redis]:
    """The app's Redis client, or None if it never connected."""
    return getattr(request.app.state, "redis", None)
