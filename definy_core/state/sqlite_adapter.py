"""SQLite adapter for local-only operation and tests.

Provides an async SQLAlchemy engine backed by ``aiosqlite`` that uses the
same ORM table definitions as the production PostgreSQL backend.

Key differences from the PostgreSQL backend:

* No connection pooling (SQLite is single-writer); in-memory databases
  share one static connection.
* JSONB columns fall back to SQLite's JSON (stored as TEXT).
* The driver's implicit transaction handling is disabled and ``BEGIN`` is
  emitted explicitly, so that SAVEPOINTs behave as on PostgreSQL.  Project
  and branch creation rely on savepoints for atomicity.

INVARIANT: The same ORM code paths are exercised in local and production
modes.  Only the engine URL differs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def get_local_engine(
    db_path: Path | str = ".definy/state.db",
) -> AsyncEngine:
    """Create an async SQLAlchemy engine backed by SQLite via aiosqlite.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are
        created automatically.  Use ``:memory:`` for ephemeral
        in-memory databases (useful for testing).

    Returns
    -------
    AsyncEngine
        A configured async engine ready for session creation.
    """
    kwargs: dict[str, Any] = {}
    if db_path == ":memory:":
        url = "sqlite+aiosqlite:///:memory:"
        kwargs["poolclass"] = StaticPool
    else:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite+aiosqlite:///{db_path}"

    engine = create_async_engine(
        url,
        echo=False,
        connect_args={"check_same_thread": False},
        **kwargs,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn: Any, _: object) -> None:
        # Hand transaction control to SQLAlchemy (see "begin" below).
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    logger.info("Created SQLite engine: %s", url)
    return engine


async def create_local_tables(engine: AsyncEngine) -> None:
    """Create all ORM tables in the SQLite database.

    Idempotent and safe to call on every startup.
    """
    from definy_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("SQLite tables created/verified")
