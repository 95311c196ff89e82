"""
StackIt Backend — Test Configuration (conftest.py)
====================================================

What:  Shared fixtures: an in-memory SQLite database, sessions, user
       factories, and an HTTP client bound to a fresh app.
How:   Environment variables are set before anything from `stackit` is
       imported, so the module-level `settings` sees test values (fast
       bcrypt, generous rate limits, cache off unless a test turns it on).

Fixture Hierarchy (all function-scoped, a new database per test):
    database ──┬── db              session for service-level tests
               ├── make_user       factory committing through its own session
               └── app ── client   httpx AsyncClient over ASGITransport

The app's lifespan is not run by ASGITransport; the `database` fixture
creates the schema itself.
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-for-the-stackit-suite-0123456789"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["AUTH_RATE_LIMIT_REQUESTS"] = "10000"
os.environ["PASSWORD_RATE_LIMIT_REQUESTS"] = "1000"
os.environ["CACHE_ENABLED"] = "false"

from typing import AsyncGenerator, Awaitable, Callable, Dict  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import stackit.models  # noqa: E402,F401
from stackit.cache import ResponseCache  # noqa: E402
from stackit.database import Database, MonitoredSession  # noqa: E402
from stackit.main import create_app  # noqa: E402
from stackit.models import User  # noqa: E402
from stackit.security import create_access_token, hash_password  # noqa: E402

DEFAULT_PASSWORD = "Passw0rdOK"

UserFactory = Callable[..., Awaitable[User]]


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """A private in-memory database with the full schema."""
    db = Database("sqlite+aiosqlite:///:memory:", slow_checkout_seconds=30)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db(database: Database) -> AsyncGenerator[MonitoredSession, None]:
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(database: Database) -> UserFactory:
    """
    Create and commit a user.

    Usage:
        alice = await make_user("alice")
        admin = await make_user("root", role="admin")
    """

    async def factory(username: str, role: str = "user", password: str = DEFAULT_PASSWORD, **fields) -> User:
        async with database.session() as session:
            user = User(
                username=username,
                email=fields.pop("email", f"{username}@example.com"),
                password_hash=await hash_password(password),
                role=role,
                reputation=fields.pop("reputation", 0),
                **fields,
            )
            session.add(user)
            await session.commit()
            return user

    return factory


async def reload(database: Database, model, ident):
    """Fresh copy of a row, read through a new session."""
    async with database.session() as session:
        return await session.get(model, ident)


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role, user.username)}"}


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(max_entries=100, enabled=False)


@pytest.fixture
def app(database: Database, cache: ResponseCache):
    return create_app(database=database, cache=cache)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client talking to the app in-process.

    Usage:
        response = await client.get("/health")
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
