"""
Test fixtures for the Card API test suite.

  - db_engine / session_factory / db_session: Fresh in-memory SQLite
    database for each test
  - codec / auth_service: The token codec and auth service under test,
    also injected into the app through dependency overrides
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Test client logged in as "alice"
  - other_user_headers: Authorization header for a second user, "bob",
    for cross-user tests

Key design decisions:
  - In-memory SQLite with StaticPool: every session in a test shares the
    one connection, so all of them see the same database.
  - get_db, get_token_codec and get_auth_service are overridden so each
    test gets its own service instance (and its own rotation locks).
  - Users are created through the real signup and login endpoints.
"""

import os

# Settings() requires SECRET_KEY at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from cardapi.config import settings
from cardapi.database import Base, get_db
from cardapi.dependencies import get_auth_service, get_token_codec
from cardapi.exceptions import CardAPIError
from cardapi.main import app
from cardapi.security import Argon2PasswordHasher, TokenCodec
from cardapi.services.auth_service import AuthService


TEST_DATABASE_URL = "sqlite+aiosqlite://"

ALICE = {"username": "alice", "password": "AlicePass123!"}
BOB = {"username": "bob", "password": "BobPass456!"}


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def codec():
    return TokenCodec(
        secret_key=settings.SECRET_KEY,
        issuer=settings.JWT_ISSUER,
        audience=settings.JWT_AUDIENCE,
        access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        algorithm=settings.ALGORITHM,
    )


@pytest.fixture
def auth_service(codec):
    return AuthService(codec=codec, hasher=Argon2PasswordHasher(), lock_timeout=5.0)


@pytest_asyncio.fixture
async def client(session_factory, codec, auth_service):
    """
    Async HTTP test client with the test database and services injected.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except CardAPIError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_auth_service] = lambda: auth_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def signup_and_login(client: AsyncClient, username: str, password: str) -> dict:
    """Register a user through the API and return the login response body."""
    response = await client.post(
        "/auth/signup", json={"username": username, "password": password}
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    response = await client.post(
        "/auth/login", json={"username": username, "password": password}
    )
    assert response.status_code == 200, f"Login failed: {response.text}"
    return response.json()


@pytest_asyncio.fixture
async def authenticated_client(client):
    """Test client logged in as alice (Authorization header preset)."""
    tokens = await signup_and_login(client, **ALICE)
    client.headers["Authorization"] = f"Bearer {tokens['access_token']}"
    return client


@pytest_asyncio.fixture
async def other_user_headers(client):
    """Authorization header for bob, a second independent user."""
    tokens = await signup_and_login(client, **BOB)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def register_user(client):
    """Return a coroutine function that signs up and logs in a user."""

    async def _register(username: str, password: str) -> dict:
        return await signup_and_login(client, username, password)

    return _register


@pytest_asyncio.fixture
async def alice_tokens(client):
    """Login response body for alice (no header set on the client)."""
    return await signup_and_login(client, **ALICE)
