"""Test configuration and fixtures.

Integration tests run the services against a SQLite database file through
aiosqlite, which supports the same ``ON CONFLICT`` upserts as PostgreSQL.
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def pytest_configure(config):
    """Register integration test marker."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring database"
    )


@pytest.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator:
    """Fresh SQLite database file per test."""
    from gamification.db.models import Base

    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'gamification.db'}",
        connect_args={"timeout": 30},
        echo=False,
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs work, and take the write
    # lock up front so concurrent sessions queue instead of deadlocking.
    @event.listens_for(test_engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each integration test."""
    async with session_maker() as session:
        yield session
