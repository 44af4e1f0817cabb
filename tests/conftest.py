"""
Test infrastructure for the Conduit API.

Strategy
--------
- Settings are read from the environment at import time, so the test
  values (SQLite URL, cheap bcrypt rounds, fixed secret) are exported
  before anything under ``app`` is imported.
- SQLite in-memory via aiosqlite with a StaticPool: every task shares the
  one connection, which is what keeps an in-memory database alive.
- The app's get_db dependency is overridden so every request (and the
  auth dependencies built on it) uses the test session factory.
- Tables are created before and dropped after each test.
- ``seeded`` loads the demo data set from ``scripts/seed.py`` directly
  through the ORM, the way an external seeder would.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DEBUG"] = "false"

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.middleware import install_query_counter  # noqa: E402
from scripts.seed import seed_demo_data  # noqa: E402

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that call services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def seeded() -> dict:
    """
    Commit the demo data set and return plain facts about it.

    ORM objects are not returned because they belong to a closed session.
    """
    async with async_session_test() as session:
        data = await seed_demo_data(session)
        await session.commit()
        return {
            "user_ids": {u.username: u.id for u in data["users"]},
            "slugs": [a.slug for a in data["articles"]],
            "comment_ids": {
                c.id: (c.article_id, c.author_id) for c in data["comments"]
            },
        }


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def register(async_client: AsyncClient):
    """
    Return a coroutine that registers ``username`` through the API and
    yields its Authorization headers.
    """

    async def _register(username: str, password: str = "password123") -> dict:
        resp = await async_client.post("/api/users", json={"user": {
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
        }})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['user']['token']}"}

    return _register


@pytest_asyncio.fixture
async def jake_headers(async_client: AsyncClient, seeded: dict) -> dict:
    """Log in as the seeded user ``jake`` and return Authorization headers."""
    resp = await async_client.post("/api/users/login", json={"user": {
        "email": "jake@jake.jake",
        "password": "jakejake",
    }})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['user']['token']}"}
