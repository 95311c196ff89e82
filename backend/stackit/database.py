"""
StackIt Backend — Database Service
====================================

What:  The `Database` service object (engine, pool, sessions, lifecycle) and the
       `MonitoredSession` wrapper handed to services.
Why:   One explicitly constructed object owns the connection pool. The app
       factory builds it, stores it on `app.state`, and the lifespan handler
       probes it at startup and drains it at shutdown. Tests build their own
       instance against in-memory SQLite.
How:   Async SQLAlchemy engine with a bounded queue pool. Each request borrows
       one session through `get_db_session`; a timer on the wrapper warns when
       a session stays checked out suspiciously long.

Connection Pooling Strategy:
    pool_size + max_overflow:  hard upper bound of concurrent connections
    pool_timeout:              how long a caller queues for a free connection
                               before the operation fails
    pool_pre_ping:             validates connections before use
    pool_recycle:              retires long-lived connections
    statement_timeout:         PostgreSQL aborts any single statement that runs
                               longer than the configured budget

Transaction Boundaries:
    Read paths rely on the per-request session: commit on success, rollback on
    any exception. Mutating service methods commit their own unit of work so
    that everything they changed (vote row + counter + reputation, answer +
    question counters, tag link + usage count) lands together before the route
    broadcasts anything over the real-time channel.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import QueuePool, StaticPool
from starlette.requests import HTTPConnection
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = logging.getLogger(__name__)

# Longest statement text kept for slow-checkout diagnostics
_STATEMENT_PREVIEW = 500


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models register with this metadata; Alembic and the test fixtures
    create the schema from it.
    """
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE rules unless this is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ══════════════════════════════════════════════════════════════════════════
# Monitored Session
# ══════════════════════════════════════════════════════════════════════════


class MonitoredSession:
    """
    Wrapper around a pooled `AsyncSession` that remembers what it last ran.

    What:    Forwards the session API used by services and records the last
             statement issued through it.
    Why:     When a connection is held for longer than the slow-checkout
             threshold, the warning names the statement that was running,
             which is usually enough to find the culprit.
    How:     `start()` arms a loop timer; `stop()` cancels it. If the timer
             fires first, a WARNING is logged with the elapsed time and the
             last statement. The timer never interrupts the session.

    Only the methods services need are exposed. `raw` gives access to the
    underlying AsyncSession for anything else.
    """

    def __init__(self, session: AsyncSession, slow_after_seconds: float):
        self._session = session
        self._slow_after = slow_after_seconds
        self._timer: Optional[asyncio.TimerHandle] = None
        self.checked_out_at = time.monotonic()
        self.last_statement: Optional[str] = None
        self.statement_count = 0

    @property
    def raw(self) -> AsyncSession:
        return self._session

    # ── Checkout timer ────────────────────────────────────────────────────

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self.checked_out_at = time.monotonic()
        self._timer = loop.call_later(self._slow_after, self._report_slow_checkout)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def held_for(self) -> float:
        """Seconds since this session was checked out."""
        return time.monotonic() - self.checked_out_at

    def _report_slow_checkout(self) -> None:
        logger.warning(
            "Database session checked out for %.1fs (%d statements). Last statement: %s",
            self.held_for,
            self.statement_count,
            self.last_statement or "<none>",
        )

    def _track(self, statement: Any) -> None:
        self.statement_count += 1
        self.last_statement = str(statement)[:_STATEMENT_PREVIEW]

    # ── Forwarded session API ─────────────────────────────────────────────

    async def execute(self, statement, params=None, **kwargs):
        self._track(statement)
        return await self._session.execute(statement, params, **kwargs)

    async def scalar(self, statement, params=None, **kwargs):
        self._track(statement)
        return await self._session.scalar(statement, params, **kwargs)

    async def scalars(self, statement, params=None, **kwargs):
        self._track(statement)
        return await self._session.scalars(statement, params, **kwargs)

    async def get(self, entity, ident, **kwargs):
        self._track(f"GET {getattr(entity, '__name__', entity)} {ident!r}")
        return await self._session.get(entity, ident, **kwargs)

    def add(self, instance) -> None:
        self._session.add(instance)

    async def delete(self, instance) -> None:
        self._track(f"DELETE {type(instance).__name__}")
        await self._session.delete(instance)

    async def flush(self) -> None:
        await self._session.flush()

    async def refresh(self, instance, attribute_names=None) -> None:
        await self._session.refresh(instance, attribute_names)

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()


# ══════════════════════════════════════════════════════════════════════════
# Database Service
# ══════════════════════════════════════════════════════════════════════════


class Database:
    """
    Owns the async engine, its connection pool and the session factory.

    Lifecycle:
        1. Constructed by `create_app()` (no connection is opened yet)
        2. `connect()` during startup: SELECT 1 with retry and backoff
        3. `session()` / `transaction()` per request or socket event
        4. `dispose()` during shutdown: closes every pooled connection
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_timeout: float = 2.0,
        pool_recycle: int = 1800,
        pool_pre_ping: bool = True,
        statement_timeout_ms: int = 30_000,
        slow_checkout_seconds: float = 5.0,
        echo: bool = False,
    ):
        self.url = url
        self.slow_checkout_seconds = slow_checkout_seconds

        if url.startswith("sqlite"):
            # Pool sizing does not apply; an in-memory DB must share one connection
            options: Dict[str, Any] = {}
            if ":memory:" in url or url.rstrip("/").endswith(":"):
                options["poolclass"] = StaticPool
        else:
            options = {
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_timeout": pool_timeout,
                "pool_recycle": pool_recycle,
                "pool_pre_ping": pool_pre_ping,
            }
            if "+asyncpg" in url:
                options["connect_args"] = {
                    "server_settings": {
                        "statement_timeout": str(statement_timeout_ms),
                        "application_name": "stackit",
                    }
                }

        self.engine = create_async_engine(url, echo=echo, **options)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=settings.db_pool_pre_ping,
            statement_timeout_ms=settings.db_statement_timeout_ms,
            slow_checkout_seconds=settings.db_slow_checkout_seconds,
            echo=settings.log_level == "DEBUG",
        )

    # ── Sessions ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def session(self) -> AsyncIterator[MonitoredSession]:
        """Borrow a monitored session; the connection returns to the pool on exit."""
        async with self.session_factory() as raw:
            monitored = MonitoredSession(raw, self.slow_checkout_seconds)
            monitored.start()
            try:
                yield monitored
            finally:
                monitored.stop()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MonitoredSession]:
        """
        Session with commit-on-success / rollback-on-error semantics.

        Any exception (database or not) rolls back and is re-raised so the
        global handlers can map it to a response.
        """
        async with self.session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ── Schema helpers (tests and local development) ─────────────────────

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def ping(self) -> None:
        """Raise if the database cannot run a trivial query."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def connect(self, attempts: int = 5, max_wait: int = 10) -> None:
        """
        Wait for the database to accept connections.

        Retries only connection-level failures (DBAPIError, OSError) with
        exponential backoff and jitter; gives up after `attempts` tries and
        re-raises the last error.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((DBAPIError, OSError)),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential_jitter(multiplier=0.5, max=max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.ping()
        logger.info("Database reachable (%s)", self.engine.url.render_as_string(hide_password=True))

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()

    def pool_status(self) -> Dict[str, Any]:
        """Pool occupancy snapshot for /health."""
        pool = self.engine.pool
        if isinstance(pool, QueuePool):
            return {
                "size": pool.size(),
                "checked_out": pool.checkedout(),
                "checked_in": pool.checkedin(),
                "overflow": pool.overflow(),
            }
        return {"type": type(pool).__name__}


# ── Request Dependency ────────────────────────────────────────────────────
async def get_db_session(request: HTTPConnection) -> AsyncGenerator[MonitoredSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits when the handler returns normally and rolls back when it raises.

    Example usage in a route:
        @router.get("/questions")
        async def list_questions(db: MonitoredSession = Depends(get_db_session)):
            ...
    """
    database: Database = request.app.state.database
    async with database.transaction() as session:
        yield session
