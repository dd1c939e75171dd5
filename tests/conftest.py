"""Test fixtures — a throwaway SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own database file under tmp_path, with the schema
   created from the ORM metadata. Nothing leaks between tests.
2. Service tests use `db` (one AsyncSession) or `session_factory` when a
   test needs several independent sessions (e.g. two requests racing).
3. API tests use `client`, an httpx client wired to a real app built by
   create_app() against the same database. The app's mailer is a
   LogNotifier, so tests read invitation/reset links from its outbox.

Secrets are passed explicitly; nothing is read from the environment.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskhub.auth.tokens import TokenCodec
from taskhub.config import Settings
from taskhub.db.models import Base
from taskhub.main import create_app
from taskhub.services.notifier import LogNotifier


def make_settings(database_url: str, **overrides) -> Settings:
    values = {
        "database_url": database_url,
        "redis_url": "redis://localhost:1/0",
        "access_token_secret": "test-access-secret-aaaaaaaaaaaaaaaaaaaa",
        "refresh_token_secret": "test-refresh-secret-bbbbbbbbbbbbbbbbbbb",
        "invitation_token_secret": "test-invitation-secret-ccccccccccccccccc",
        "reset_token_secret": "test-reset-secret-dddddddddddddddddddddd",
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return Settings(**values)


def link_token(message: dict) -> str:
    """Pull the token off the end of a mailed link."""
    return message["body"].rsplit("/", 1)[1]


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return make_settings(f"sqlite+aiosqlite:///{tmp_path / 'taskhub.db'}")


@pytest.fixture()
def tokens(settings) -> TokenCodec:
    return TokenCodec(settings)


@pytest.fixture()
def notifier() -> LogNotifier:
    return LogNotifier()


@pytest_asyncio.fixture()
async def engine(settings):
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def app(settings, engine, notifier):
    app = create_app(settings, notifier=notifier)
    yield app
    await app.state.engine.dispose()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
