"""Async engine and session handling.

One engine per process, built lazily from `settings.database`. SQLite
engines get savepoint support because every reconciliation row runs in
its own nested transaction.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from lead_crm.config import get_settings
from lead_crm.db.base import Base


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own transaction boundaries on SQLite.

    The sqlite3 driver starts transactions lazily and commits before
    DDL, which breaks SAVEPOINT (session.begin_nested()). Turning off
    the driver's handling and emitting BEGIN ourselves restores it.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Engine for `url`.

    A SQLite file gets its parent directory created first.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_async_engine(url, echo=echo, pool_pre_ping=True)

    if parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(url, echo=echo)
    enable_sqlite_savepoints(engine)
    return engine


def _session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Repositories flush explicitly; objects stay usable after commit
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        database = get_settings().database
        _engine = build_engine(database.url, echo=database.echo)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = _session_maker(get_engine())
    return _session_factory


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on clean exit and rolls back on error.

    Used by the CLI; `get_db` wraps it for FastAPI.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_db_context() as session:
        yield session


async def init_db() -> None:
    """Create all tables. Safe to call multiple times."""
    from lead_crm.db import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def create_test_engine(url: str = "sqlite+aiosqlite:///:memory:") -> AsyncEngine:
    """Engine with the full schema created, for tests."""
    from lead_crm.db import models  # noqa: F401

    engine = build_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


def get_test_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return _session_maker(engine)
