"""Root conftest: fake Redis, in-memory SQLite, app factory, common test infrastructure."""
import asyncio

import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_CSRF_SECRET = "test-csrf-secret"
TEST_SESSION_SECRET = "test-session-secret"


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Login/register limits are process-wide; start every test clean."""
    from batmodule.dependencies import limiter

    limiter.reset()
    yield


@pytest.fixture(autouse=True)
def _fast_bcrypt(monkeypatch):
    """Cheap bcrypt rounds so account tests stay fast."""
    monkeypatch.setattr("batmodule.services.auth_service.BCRYPT_ROUNDS", 4)


@pytest.fixture
def test_settings():
    from batmodule.config import GlobalConfig

    return GlobalConfig(
        _env_file=None,
        environment="test",
        csrf_secret=TEST_CSRF_SECRET,
        session_secret=TEST_SESSION_SECRET,
        jwt_secret="",
        redis_url="redis://fake:6379",
        database_url="sqlite+aiosqlite://",
    )


@pytest_asyncio.fixture
async def fake_redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


class HangingRedis:
    """Redis stand-in whose calls never complete."""

    async def _hang(self, *args, **kwargs):
        await asyncio.sleep(10)

    get = set = expire = delete = ping = _hang


@pytest.fixture
def hanging_redis():
    return HangingRedis()


@pytest.fixture
def session_store(fake_redis):
    from batmodule.services.session_store import RedisSessionStore

    return RedisSessionStore(client=fake_redis, timeout_seconds=1.0)


@pytest_asyncio.fixture
async def db_session_factory():
    """Shared in-memory SQLite database with the schema created."""
    from batmodule.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def app(test_settings, session_store, db_session_factory):
    """Fresh application wired to fake collaborators."""
    from batmodule.main import create_app

    return create_app(
        settings=test_settings,
        session_store=session_store,
        session_factory=db_session_factory,
    )


@pytest_asyncio.fixture
async def app_client(app):
    """httpx client over ASGI; keeps cookies between calls like a browser."""
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
