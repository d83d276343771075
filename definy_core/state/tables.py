"""SQLAlchemy 2.0 ORM table definitions for the Definy version store.

Two families of tables live here:

* **Content-addressed** tables (snapshots, commits, draft commits) are keyed
  by the SHA-256 hash of their JSON ``body``.  Rows are inserted once and
  never updated or deleted.
* **Pointer** tables (projects, branches, project releases) hold the only
  mutable state.  ``branches.version`` is bumped on every head or draft
  change so that compare-and-swap updates can detect races.

The ``Base`` declarative base is exported for use by Alembic migrations and
the repository layer.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Cross-dialect JSON type: uses JSONB on PostgreSQL, falls back to plain
# JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


class UTCDateTime(TypeDecorator):
    """Timezone-aware ``DateTime`` that also returns aware values on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all Definy tables."""


class _ContentAddressedColumns:
    """Columns shared by every immutable, hash-keyed table."""

    hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    body: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class ModuleSnapshotTable(_ContentAddressedColumns, Base):
    __tablename__ = "module_snapshots"


class TypeDefSnapshotTable(_ContentAddressedColumns, Base):
    __tablename__ = "type_def_snapshots"


class PartDefSnapshotTable(_ContentAddressedColumns, Base):
    __tablename__ = "part_def_snapshots"


class ExprSnapshotTable(_ContentAddressedColumns, Base):
    """Expressions shared by every part definition that computes them."""

    __tablename__ = "expr_snapshots"


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


class CommitTable(_ContentAddressedColumns, Base):
    """Immutable nodes of the commit DAG; parent links live inside ``body``."""

    __tablename__ = "commits"


class DraftCommitTable(_ContentAddressedColumns, Base):
    """Uncommitted working trees referenced from ``branches.draft_hash``."""

    __tablename__ = "draft_commits"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectTable(Base):
    """Top-level project record pointing at its master branch."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    # No FK: the master branch row is inserted after the project row.
    master_branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (Index("ix_projects_owner", "owner_id"),)


class ProjectReleaseTable(Base):
    """Membership of a commit in a project's stable or beta release set."""

    __tablename__ = "project_releases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    commit_hash: Mapped[str] = mapped_column(String(64), ForeignKey("commits.hash"), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    released_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "commit_hash", "channel", name="uq_project_releases_commit_channel"),
        Index("ix_project_releases_project_channel", "project_id", "channel"),
    )


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------


class BranchTable(Base):
    """Mutable named pointer into the commit DAG."""

    __tablename__ = "branches"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(63), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    head_hash: Mapped[str] = mapped_column(String(64), ForeignKey("commits.hash"), nullable=False)
    draft_hash: Mapped[str | None] = mapped_column(String(64), ForeignKey("draft_commits.hash"), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_branches_project_name"),
        Index("ix_branches_project", "project_id"),
        Index("ix_branches_owner", "owner_id"),
    )
