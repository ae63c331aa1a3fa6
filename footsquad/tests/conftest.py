"""
Shared pytest configuration for match engine tests.

Runs against PostgreSQL when TEST_DATABASE_URL is set, otherwise against a
throwaway SQLite file per test (aiosqlite).

SAFETY: A PostgreSQL URL is REFUSED unless the database name contains the
substring "test". This prevents accidental truncation / drop of the
development or production database when environment variables are
misconfigured.
"""

import os

# Rate limits are disabled for tests; must be set before the API is imported.
os.environ.setdefault("ENV", "test")

import asyncio  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event, text  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402
from footsquad.database.db import Base  # noqa: E402

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _resolve_test_database_url() -> str:
    """TEST_DATABASE_URL, validated; empty string selects SQLite.

    Raises ``RuntimeError`` if a server URL does not point to a database whose
    name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "")
    if not url or url.startswith("sqlite"):
        return url

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n\n"
            f"  Fix: set TEST_DATABASE_URL to a test database, e.g.:\n"
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../{db_name}_test\n"
            f"  Or unset it to run against a temporary SQLite file.\n"
            f"{'=' * 70}"
        )
    return url


# Validated at import time so pytest fails immediately with a clear message.
TEST_DATABASE_URL = _resolve_test_database_url()


def _control_sqlite_transactions(engine, begin: str = "BEGIN IMMEDIATE") -> None:
    """Make SQLite transactions real.

    pysqlite/aiosqlite defer BEGIN and mishandle SAVEPOINT; taking control of
    BEGIN fixes both. BEGIN IMMEDIATE makes concurrent sessions queue for the
    write lock instead of failing with "database is locked"; race tests use a
    plain deferred BEGIN so the match lanes decide the order.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql(begin)


async def _truncate_postgres(engine) -> None:
    """Clear rows left behind by an aborted earlier run."""
    async with engine.begin() as conn:
        result = await conn.execute(
            text("""
                SELECT tablename FROM pg_tables
                WHERE schemaname = 'public'
                AND tablename NOT LIKE 'alembic_%'
                ORDER BY tablename
            """)
        )
        tables = [row[0] for row in result.fetchall()]
        if tables:
            table_list = ", ".join(f'"{table}"' for table in tables)
            await conn.execute(text(f"TRUNCATE TABLE {table_list} RESTART IDENTITY CASCADE"))


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Fresh schema per test."""
    if TEST_DATABASE_URL:
        # NullPool avoids "Future attached to different loop" across tests
        engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    else:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'footsquad_test.db'}",
            echo=False,
            poolclass=NullPool,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _control_sqlite_transactions(engine)

    async with engine.begin() as conn:
        from footsquad.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    if engine.dialect.name == "postgresql":
        await _truncate_postgres(engine)

    # Code that opens its own sessions through db.AsyncSessionLocal must hit
    # the test database too.
    from footsquad.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await asyncio.sleep(0.05)  # let in-flight connections finish
    if engine.dialect.name == "postgresql":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    """Session factory for tests that need independent concurrent sessions."""
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Test database session; rolled back and closed after the test."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def race_session_factory(test_engine, session_factory):
    """Sessions for race tests.

    On SQLite transactions start DEFERRED, so racers are not queued on the
    database file lock before reaching the match lane, the FOR UPDATE re-read
    and the conditional UPDATE.
    """
    if test_engine.dialect.name != "sqlite":
        yield session_factory
        return

    engine = create_async_engine(
        test_engine.url,
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
    )
    _control_sqlite_transactions(engine, begin="BEGIN")
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def quiet_notifications(monkeypatch):
    """Skip notification inserts; race tests only write inside match lanes."""
    from footsquad.services import notification_service

    async def no_notification(*args, **kwargs):
        return None

    async def no_notifications(*args, **kwargs):
        return []

    monkeypatch.setattr(notification_service, "create_notification", no_notification)
    monkeypatch.setattr(notification_service, "create_notifications_bulk", no_notifications)
