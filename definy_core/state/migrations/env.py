"""Alembic environment for the Definy version store schema.

Supports both **online** (connected) and **offline** (SQL-generation) modes.
The database URL is resolved from ``DEFINY_DATABASE_URL``, then from
``alembic.ini``, then from the settings default.

``target_metadata`` is the shared ``Base.metadata`` from
``definy_core.state.tables`` so that ``--autogenerate`` compares against the
ORM definitions.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from definy_core.config import Settings
from definy_core.state.tables import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

# ---------------------------------------------------------------------------
# Database URL resolution
# ---------------------------------------------------------------------------


def _get_database_url() -> str:
    """Resolve a synchronous database URL for Alembic.

    Async driver names are swapped for their synchronous counterparts
    (``psycopg`` for PostgreSQL, ``pysqlite`` for SQLite) because Alembic's
    ``MigrationContext`` runs on a synchronous engine.
    """
    url = os.environ.get("DEFINY_DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        url = Settings().database_url
        logger.info("Using default database URL: %s", url.split("@")[-1])

    if url.startswith("postgresql+asyncpg://"):
        url = "postgresql+psycopg://" + url[len("postgresql+asyncpg://") :]
    elif url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://") :]
    elif url.startswith("sqlite+aiosqlite://"):
        url = "sqlite://" + url[len("sqlite+aiosqlite://") :]
    url = url.replace("?ssl=require", "?sslmode=require")
    url = url.replace("&ssl=require", "&sslmode=require")
    return url


# ---------------------------------------------------------------------------
# Offline migrations
# ---------------------------------------------------------------------------


def run_migrations_offline() -> None:
    """Emit the migration SQL to the script output without connecting."""
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


# ---------------------------------------------------------------------------
# Online migrations
# ---------------------------------------------------------------------------


def run_migrations_online() -> None:
    """Connect with a synchronous engine and apply pending revisions."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
