"""Shared field types and factories used across the domain models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

# Lowercase hex SHA-256 digest produced by :mod:`definy_core.hashing`.
ContentHash = Annotated[
    str,
    Field(pattern=r"^[0-9a-f]{64}$", description="SHA-256 content hash (lowercase hex)."),
]

# Random 128-bit identifier for mutable entities (branches, projects, items).
EntityId = Annotated[
    str,
    Field(min_length=1, max_length=64, description="Identifier of a mutable entity."),
]

# Identifier used throughout the editor: first char ``[a-z]``, then
# ``[a-zA-Z0-9]``, 1-63 characters in total.
Label = Annotated[
    str,
    Field(pattern=r"^[a-z][a-zA-Z0-9]{0,62}$", description="Lower-camel identifier, 1-63 chars."),
]


def new_id() -> str:
    """Return a fresh random identifier (32 lowercase hex characters)."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class FrozenModel(BaseModel):
    """Base for immutable, content-addressed values."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class ItemRef(FrozenModel):
    """Reference from a tree to a snapshot: the item's stable id plus its content hash."""

    id: EntityId
    hash: ContentHash
