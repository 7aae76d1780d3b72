"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - AsyncEngine with asyncpg (PostgreSQL) in production, aiosqlite for
    local development and tests.
  - Connection pool sized for a webhook workload on PostgreSQL:
      pool_size=10, max_overflow=20 → max 30 concurrent DB connections.
    SQLite uses SQLAlchemy's default pool (no sizing arguments).
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - expire_on_commit=False: avoids lazy-load errors after commit in async
    context (attributes are already loaded, no implicit SELECT needed).
  - SQLite: the driver's own transaction handling is switched off and
    SQLAlchemy emits BEGIN itself, so SAVEPOINTs (begin_nested) nest
    inside the session's transaction instead of committing it.
"""

from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from orderbot.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"echo": settings.DEBUG}
    return {
        "echo": settings.DEBUG,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,  # Recycle connections every hour
    }


def enable_sqlite_savepoints(bind: AsyncEngine) -> None:
    @event.listens_for(bind.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(bind.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)

# ── Session Factory ───────────────────────────────────────────────────────────
AsyncSessionLocal = build_session_factory(engine)
