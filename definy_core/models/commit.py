"""Commit and draft-commit models.

A commit is an immutable node of the version DAG.  A draft commit holds the
uncommitted working tree of a branch.  Both share the same tree and project
metadata shape and are distinguished by the ``state`` tag, so that code
handling "any commit-like object" can use :data:`AnyCommit` and promotion
from draft to committed is an explicit, checked transition.

``created_at`` is assigned by the server clock and is part of the hashed
content: two otherwise identical commits created at different instants are
different events and receive different hashes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Self

from pydantic import Field, field_validator

from definy_core.hashing import content_hash
from definy_core.models.common import ContentHash, EntityId, FrozenModel, ItemRef

_PLACEHOLDER_HASH = "0" * 64


class ProjectMeta(FrozenModel):
    """Project-level presentation metadata recorded with every commit."""

    name: str = ""
    icon_hash: ContentHash | None = None
    image_hash: ContentHash | None = None
    summary: str = ""
    description: str = ""


class CommitTree(FrozenModel):
    """The project tree referenced by a commit or draft."""

    modules: list[ItemRef] = Field(default_factory=list)
    type_defs: list[ItemRef] = Field(default_factory=list)
    part_defs: list[ItemRef] = Field(default_factory=list)
    dependencies: list[ContentHash] = Field(
        default_factory=list,
        description="Hashes of commits of other projects this tree depends on.",
    )


class CommitParams(FrozenModel):
    """Caller-supplied content for a new commit (everything except clock and author)."""

    parent_hashes: list[ContentHash] = Field(default_factory=list)
    branch_id: EntityId | None = None
    message: str = ""
    project: ProjectMeta = Field(default_factory=ProjectMeta)
    tree: CommitTree = Field(default_factory=CommitTree)

    @field_validator("parent_hashes")
    @classmethod
    def _unique_parents(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("parent_hashes must not contain duplicates")
        return value


class DraftParams(FrozenModel):
    """Caller-supplied content for a draft commit."""

    message: str = ""
    is_release: bool = False
    project: ProjectMeta = Field(default_factory=ProjectMeta)
    tree: CommitTree = Field(default_factory=CommitTree)


class _CommitBody(FrozenModel):
    """Fields shared by every commit-like object, hashed as a unit."""

    message: str = ""
    author_id: EntityId | None = None
    created_at: datetime
    project: ProjectMeta = Field(default_factory=ProjectMeta)
    tree: CommitTree = Field(default_factory=CommitTree)

    @classmethod
    def seal(cls, **fields: Any) -> Self:
        """Validate *fields*, derive the content hash and return the sealed object."""
        body = cls.model_validate({**fields, "hash": _PLACEHOLDER_HASH}).body()
        return cls.model_validate({**body, "hash": content_hash(body)})

    def body(self) -> dict[str, Any]:
        """Return the JSON body that is hashed and persisted (without ``hash``)."""
        return self.model_dump(mode="json", exclude={"hash"})

    def compute_hash(self) -> str:
        return content_hash(self.body())


class Commit(_CommitBody):
    """Immutable node of the commit DAG."""

    state: Literal["committed"] = "committed"
    hash: ContentHash
    parent_hashes: list[ContentHash] = Field(default_factory=list)
    branch_id: EntityId | None = None

    @property
    def is_root(self) -> bool:
        return not self.parent_hashes


class DraftCommit(_CommitBody):
    """Uncommitted working-tree state of a branch; not part of the DAG."""

    state: Literal["draft"] = "draft"
    hash: ContentHash
    is_release: bool = False

    def to_commit_params(
        self,
        *,
        parent_hashes: list[str],
        branch_id: str | None,
        message: str | None = None,
    ) -> CommitParams:
        """Turn this draft into the parameters of a real commit on top of *parent_hashes*."""
        return CommitParams(
            parent_hashes=parent_hashes,
            branch_id=branch_id,
            message=self.message if message is None else message,
            project=self.project,
            tree=self.tree,
        )


AnyCommit = Annotated[Commit | DraftCommit, Field(discriminator="state")]
