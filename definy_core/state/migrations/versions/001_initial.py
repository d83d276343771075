"""Initial schema for the Definy version store.

Creates the content-addressed tables (module, type, part and expression
snapshots, commits and draft commits) and the pointer tables (projects,
branches, project releases).

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_CONTENT_ADDRESSED_TABLES = (
    "module_snapshots",
    "type_def_snapshots",
    "part_def_snapshots",
    "expr_snapshots",
    "commits",
    "draft_commits",
)

_JSON = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
    # ------------------------------------------------------------------
    # content-addressed objects
    # ------------------------------------------------------------------
    for table_name in _CONTENT_ADDRESSED_TABLES:
        op.create_table(
            table_name,
            sa.Column("hash", sa.String(64), primary_key=True),
            sa.Column("body", _JSON, nullable=False),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            ),
        )

    # ------------------------------------------------------------------
    # projects
    # ------------------------------------------------------------------
    op.create_table(
        "projects",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(256), nullable=False, server_default=""),
        sa.Column("master_branch_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_projects_owner", "projects", ["owner_id"])

    # ------------------------------------------------------------------
    # project_releases
    # ------------------------------------------------------------------
    op.create_table(
        "project_releases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "project_id",
            sa.String(64),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("commit_hash", sa.String(64), sa.ForeignKey("commits.hash"), nullable=False),
        sa.Column("channel", sa.String(16), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "commit_hash", "channel", name="uq_project_releases_commit_channel"),
    )
    op.create_index("ix_project_releases_project_channel", "project_releases", ["project_id", "channel"])

    # ------------------------------------------------------------------
    # branches
    # ------------------------------------------------------------------
    op.create_table(
        "branches",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(64),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(63), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("head_hash", sa.String(64), sa.ForeignKey("commits.hash"), nullable=False),
        sa.Column("draft_hash", sa.String(64), sa.ForeignKey("draft_commits.hash"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "name", name="uq_branches_project_name"),
    )
    op.create_index("ix_branches_project", "branches", ["project_id"])
    op.create_index("ix_branches_owner", "branches", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_branches_owner", table_name="branches")
    op.drop_index("ix_branches_project", table_name="branches")
    op.drop_table("branches")
    op.drop_index("ix_project_releases_project_channel", table_name="project_releases")
    op.drop_table("project_releases")
    op.drop_index("ix_projects_owner", table_name="projects")
    op.drop_table("projects")
    for table_name in reversed(_CONTENT_ADDRESSED_TABLES):
        op.drop_table(table_name)
