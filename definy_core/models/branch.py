"""Mutable pointer models: branches and projects.

These are read-side views of the ``branches`` and ``projects`` rows.  They
are the only entities in the store that change after creation.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from definy_core.models.common import ContentHash, EntityId, Label

MASTER_BRANCH_NAME = "master"
MASTER_BRANCH_DESCRIPTION = "Master branch created automatically with the project."


class ReleaseChannel(str, Enum):
    STABLE = "stable"
    BETA = "beta"


class Branch(BaseModel):
    """A named, mutable pointer to a commit plus an optional draft."""

    id: EntityId
    name: Label
    description: str = ""
    project_id: EntityId
    head_hash: ContentHash
    owner_id: EntityId
    draft_hash: ContentHash | None = None
    version: int = Field(default=1, ge=1, description="Incremented on every head or draft change.")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Project(BaseModel):
    """Top-level entity: owner, master branch and release channels."""

    id: EntityId
    owner_id: EntityId
    name: str = ""
    master_branch_id: EntityId
    branch_ids: list[EntityId] = Field(default_factory=list)
    stable_released: list[ContentHash] = Field(default_factory=list)
    beta_released: list[ContentHash] = Field(default_factory=list)
    created_at: datetime | None = None
