"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Everything stateful (settings, engine, token codec, mailer)
is built here once and hung on app.state; nothing is a module global.
Run with:

    uvicorn taskhub.main:create_app --factory

Lifespan manages startup/shutdown (Redis, engine disposal).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskhub import __version__
from taskhub.api import api_router
from taskhub.auth.tokens import TokenCodec
from taskhub.cache.redis import close_redis, connect_redis
from taskhub.config import Settings, get_settings
from taskhub.db.engine import build_engine, build_session_factory
from taskhub.errors import TaskHubError
from taskhub.logging_config import configure_logging
from taskhub.middleware.rate_limit import RateLimitMiddleware
from taskhub.middleware.request_id import RequestIdMiddleware
from taskhub.middleware.security import SecurityHeadersMiddleware
from taskhub.services.notifier import Notifier, build_notifier

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    settings: Settings = app.state.settings
    logger.info(
        "taskhub.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        app.state.redis = await connect_redis(settings.redis_url)
        logger.info("taskhub.redis_connected")
    except Exception as e:
        # Redis is optional: without it, rate limiting is skipped
        logger.warning("taskhub.redis_unavailable", error=str(e))

    yield

    logger.info("taskhub.shutdown")
    await close_redis(app.state.redis)
    app.state.redis = None
    await app.state.engine.dispose()


async def _handle_taskhub_error(request: Request, exc: TaskHubError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


def create_app(
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="TaskHub",
        description="Project/task management backend — identity and team membership",
        version=__version__,
        lifespan=lifespan,
    )

    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.tokens = TokenCodec(settings)
    app.state.notifier = notifier or build_notifier(settings)
    # Connected by the lifespan; stays None if Redis is unreachable
    app.state.redis = None

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TaskHubError, _handle_taskhub_error)
    app.include_router(api_router)

    return app
