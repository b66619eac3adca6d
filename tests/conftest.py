import os
import sys
from datetime import datetime, timedelta, timezone

# Settings are read at import time; point them at throwaway backends first
os.environ["DATABASE_URL"] = os.getenv(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)
os.environ["REDIS_URL"] = ""
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTH_JWT_SECRET"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add the app directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import app.models  # noqa: E402,F401
from app.core.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402

TEST_DATABASE_URL = os.environ["DATABASE_URL"]


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection keeps the in-memory database alive
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True}


@pytest.fixture
async def db():
    """Create a fresh database session for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL, echo=False, **_engine_kwargs(TEST_DATABASE_URL)
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)  # Clean slate
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest.fixture(autouse=True)
def override_get_db(db: AsyncSession):
    """Override the get_db dependency to use the test database."""

    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


# Test Authentication Utilities
def get_auth_headers(user_id: str) -> dict[str, str]:
    """
    Generate authentication headers for tests.

    Tests run without AUTH_JWT_SECRET, so the development fallback accepts
    the user id itself as the bearer token.
    """
    return {"Authorization": f"Bearer {user_id}"}


def make_access_token(
    user_id: str,
    secret: str,
    audience: str = "authenticated",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Sign an access token the way the identity provider does."""
    claims = {
        "sub": user_id,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")
