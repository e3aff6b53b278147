"""Database connection management for Storeloom.

Provides asynchronous database access using SQLAlchemy with aiosqlite for
SQLite. The job engine opens one short-lived session per operation through
the module-level ``AsyncSessionLocal`` factory (or one built with
``build_session_factory`` for an explicit URL).

Usage:
    from src.db.connection import AsyncSessionLocal, async_init_db

    await async_init_db()
    async with AsyncSessionLocal() as db:
        # ... use async db session
"""

import os
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.db.models import Base


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. sqlite:///<data dir>/storeloom.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


def to_async_url(url: str) -> str:
    """Convert sqlite:/// to sqlite+aiosqlite:/// for async support."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///")
    return url


def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers alongside the single writer, so
      request handlers keep reading while a sync job writes.
    - synchronous=NORMAL: Full WAL performance benefit; commits are durable
      after WAL fsync.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


def create_engine_for_url(url: str) -> AsyncEngine:
    """Create an async engine for ``url`` with SQLite pragmas attached."""
    async_url = to_async_url(url)
    engine = create_async_engine(
        async_url,
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )
    if async_url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used across the job engine."""
    return async_sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Engine creation
DATABASE_URL = get_database_url()

async_engine = create_engine_for_url(DATABASE_URL)

AsyncSessionLocal = build_session_factory(async_engine)


# Initialization functions


async def async_init_db(engine: AsyncEngine | None = None) -> None:
    """Create all database tables asynchronously.

    Uses the Base.metadata from models.py to create all defined tables.
    Safe to call multiple times - will not recreate existing tables.

    Args:
        engine: Engine to initialize. Defaults to the module engine.
    """
    target = engine or async_engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Cleanup functions


async def close_async_db() -> None:
    """Close the async engine and dispose of connection pool."""
    await async_engine.dispose()
