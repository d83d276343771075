"""Branch registry: named, mutable pointers into the commit DAG.

A branch row holds the hash of its head commit and, optionally, of a draft
commit with uncommitted work.  Every head or draft change bumps
``branches.version``.  Head moves are compare-and-swap: the caller states
which head it built on and the update only applies if that is still the
head, so two writers racing on one branch cannot silently lose a commit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from definy_core.config import Settings
from definy_core.errors import (
    ConcurrentModificationError,
    DanglingReferenceError,
    NotFoundError,
)
from definy_core.graph.commit_graph import CommitGraph
from definy_core.models.branch import Branch, ReleaseChannel
from definy_core.models.commit import Commit, CommitParams
from definy_core.models.common import Label, new_id, utcnow
from definy_core.state.database import guarded
from definy_core.state.releases import ReleaseRepository
from definy_core.state.retry import RetryConfig, async_retry_with_backoff
from definy_core.state.tables import BranchTable, ProjectTable

logger = logging.getLogger(__name__)

_LABEL = TypeAdapter(Label)


def validate_label(name: str) -> str:
    """Return *name* if it is a valid label, else raise ``ValidationError``."""
    return _LABEL.validate_python(name)


class BranchRegistry:
    """Create, move and inspect branches.

    Parameters
    ----------
    session:
        The caller's async session; writes are flushed, never committed.
    graph:
        Commit graph bound to the same session.  Built from the other
        arguments when omitted.
    timeout:
        Per-operation store deadline in seconds.
    clock:
        Source of timestamps.
    id_factory:
        Source of new branch ids.
    retry_config:
        Backoff schedule for :meth:`commit_with_retry`.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        graph: CommitGraph | None = None,
        verify_references: bool = True,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._session = session
        self._graph = graph or CommitGraph(
            session, verify_references=verify_references, timeout=timeout, clock=clock
        )
        self._releases = ReleaseRepository(session, timeout=timeout, clock=clock)
        self._timeout = timeout
        self._clock = clock
        self._new_id = id_factory
        self._retry = retry_config or RetryConfig()

    @classmethod
    def from_settings(
        cls,
        session: AsyncSession,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ) -> BranchRegistry:
        return cls(
            session,
            graph=CommitGraph.from_settings(session, settings, clock=clock),
            timeout=settings.store_timeout_seconds,
            clock=clock,
            id_factory=id_factory,
            retry_config=RetryConfig.from_settings(settings),
        )

    @property
    def graph(self) -> CommitGraph:
        return self._graph

    async def _run(self, operation: str, stmt: Any) -> Any:
        return await guarded(operation, self._session.execute(stmt), self._timeout)

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    async def create_branch(
        self,
        project_id: str,
        name: str,
        description: str,
        owner_id: str,
        params: CommitParams,
    ) -> Branch:
        """Create a branch whose head is a new commit built from *params*.

        The head commit and the branch row are written inside one savepoint:
        either both exist afterwards or neither does.

        Raises
        ------
        NotFoundError
            If the project does not exist.
        ValueError
            If the name is not a valid label or is already taken in the
            project.
        """
        validate_label(name)
        await self._require_project(project_id)
        branch_id = self._new_id()

        try:
            async with self._session.begin_nested():
                head = await self._graph.create_commit(
                    params.model_copy(update={"branch_id": branch_id}), author_id=owner_id
                )
                await self._insert_branch(
                    id=branch_id,
                    project_id=project_id,
                    name=name,
                    description=description,
                    owner_id=owner_id,
                    head_hash=head.hash,
                )
        except IntegrityError as exc:
            raise ValueError(f"Branch {name!r} already exists in project {project_id!r}") from exc

        logger.info("Created branch %s (%s) at %s", name, branch_id, head.hash[:12])
        return await self.get_branch(branch_id)

    async def branch_from(
        self,
        source_branch_id: str,
        name: str,
        owner_id: str,
        description: str = "",
    ) -> Branch:
        """Create a branch in the same project pointing at the source branch's head.

        No commit is written; the new branch shares history with its source.
        """
        validate_label(name)
        source = await self.get_branch(source_branch_id)
        branch_id = self._new_id()
        try:
            async with self._session.begin_nested():
                await self._insert_branch(
                    id=branch_id,
                    project_id=source.project_id,
                    name=name,
                    description=description,
                    owner_id=owner_id,
                    head_hash=source.head_hash,
                )
        except IntegrityError as exc:
            raise ValueError(f"Branch {name!r} already exists in project {source.project_id!r}") from exc

        logger.info("Branched %s (%s) from %s at %s", name, branch_id, source.name, source.head_hash[:12])
        return await self.get_branch(branch_id)

    async def _insert_branch(self, **values: Any) -> None:
        now = self._clock()
        self._session.add(BranchTable(version=1, created_at=now, updated_at=now, **values))
        await guarded("insert branch", self._session.flush(), self._timeout)

    async def _require_project(self, project_id: str) -> str:
        """Return the project's master branch id, or raise ``NotFoundError``."""
        result = await self._run(
            "get project",
            select(ProjectTable.master_branch_id).where(ProjectTable.id == project_id),
        )
        master_branch_id = result.scalar_one_or_none()
        if master_branch_id is None:
            raise NotFoundError("project", project_id)
        return master_branch_id

    async def get_branch(self, branch_id: str) -> Branch:
        """Return the branch with *branch_id*.

        Raises
        ------
        NotFoundError
            With kind ``"branch"`` if it does not exist.
        """
        stmt = select(BranchTable).where(BranchTable.id == branch_id).execution_options(populate_existing=True)
        row = (await self._run("get branch", stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("branch", branch_id)
        return Branch.model_validate(row, from_attributes=True)

    async def list_branches(self, project_id: str) -> list[Branch]:
        """Return the project's branches, oldest first."""
        stmt = (
            select(BranchTable)
            .where(BranchTable.project_id == project_id)
            .order_by(BranchTable.created_at, BranchTable.name)
            .execution_options(populate_existing=True)
        )
        rows = (await self._run("list branches", stmt)).scalars().all()
        return [Branch.model_validate(row, from_attributes=True) for row in rows]

    async def delete_branch(self, branch_id: str) -> None:
        """Remove a branch pointer.  Its commits stay in the store.

        Raises
        ------
        ValueError
            If *branch_id* is its project's master branch.
        """
        branch = await self.get_branch(branch_id)
        if await self._require_project(branch.project_id) == branch_id:
            raise ValueError(f"Cannot delete master branch {branch_id!r}")
        await self._run("delete branch", delete(BranchTable).where(BranchTable.id == branch_id))
        await self._session.flush()
        logger.info("Deleted branch %s (%s)", branch.name, branch_id)

    # ------------------------------------------------------------------
    # Head and draft updates
    # ------------------------------------------------------------------

    async def update_head(self, branch_id: str, new_head: str, *, expected_head: str) -> Branch:
        """Move the branch head from *expected_head* to *new_head*.

        Raises
        ------
        DanglingReferenceError
            If *new_head* is not a stored commit.
        NotFoundError
            If the branch does not exist.
        ConcurrentModificationError
            If the head is no longer *expected_head*.
        """
        if not await self._graph.commit_exists(new_head):
            raise DanglingReferenceError("commit", new_head)
        await self._swap(branch_id, expected_head, head_hash=new_head)
        logger.info("Moved branch %s head %s -> %s", branch_id, expected_head[:12], new_head[:12])
        return await self.get_branch(branch_id)

    async def _swap(self, branch_id: str, expected_head: str, **values: Any) -> None:
        """Apply *values* only if the head is still *expected_head*."""
        stmt = (
            update(BranchTable)
            .where(BranchTable.id == branch_id, BranchTable.head_hash == expected_head)
            .values(version=BranchTable.version + 1, updated_at=self._clock(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._run("update branch head", stmt)
        if (result.rowcount or 0) == 0:
            current = await self.get_branch(branch_id)
            raise ConcurrentModificationError(branch_id, expected_head, current.head_hash)

    async def set_draft(self, branch_id: str, draft_hash: str) -> Branch:
        """Point the branch's draft at *draft_hash*, replacing any previous draft."""
        if not await self._graph.draft_exists(draft_hash):
            raise DanglingReferenceError("draft_commit", draft_hash)
        await self._set_draft_column(branch_id, draft_hash)
        logger.info("Set draft of branch %s to %s", branch_id, draft_hash[:12])
        return await self.get_branch(branch_id)

    async def clear_draft(self, branch_id: str) -> Branch:
        """Drop the branch's draft pointer.  The draft object itself is kept."""
        await self._set_draft_column(branch_id, None)
        logger.info("Cleared draft of branch %s", branch_id)
        return await self.get_branch(branch_id)

    async def _set_draft_column(self, branch_id: str, draft_hash: str | None) -> None:
        stmt = (
            update(BranchTable)
            .where(BranchTable.id == branch_id)
            .values(draft_hash=draft_hash, version=BranchTable.version + 1, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        result = await self._run("update branch draft", stmt)
        if (result.rowcount or 0) == 0:
            raise NotFoundError("branch", branch_id)

    # ------------------------------------------------------------------
    # Committing
    # ------------------------------------------------------------------

    async def commit(self, branch_id: str, params: CommitParams, *, author_id: str | None) -> Commit:
        """Commit *params* on top of the branch head and advance the head.

        The current head becomes the first parent.  Any ``parent_hashes`` in
        *params* are kept as additional parents, which is how merges are
        recorded.

        Raises
        ------
        ConcurrentModificationError
            If another writer moved the head first.  Nothing is written in
            that case.
        """
        branch = await self.get_branch(branch_id)
        parents = [branch.head_hash, *(p for p in params.parent_hashes if p != branch.head_hash)]
        async with self._session.begin_nested():
            commit = await self._graph.create_commit(
                params.model_copy(update={"parent_hashes": parents, "branch_id": branch_id}),
                author_id=author_id,
            )
            await self._swap(branch_id, branch.head_hash, head_hash=commit.hash)
        logger.info("Committed %s on branch %s", commit.hash[:12], branch.name)
        return commit

    async def commit_with_retry(self, branch_id: str, params: CommitParams, *, author_id: str | None) -> Commit:
        """Like :meth:`commit`, but re-read the head and retry when it moved.

        Only head races are retried.  A :class:`StoreUnavailableError` may
        leave this session unusable, so it propagates; retry the whole unit
        of work with a fresh session instead.
        """
        return await async_retry_with_backoff(
            lambda: self.commit(branch_id, params, author_id=author_id),
            self._retry,
            retryable_exceptions=(ConcurrentModificationError,),
        )

    async def promote_draft(
        self,
        branch_id: str,
        *,
        author_id: str | None,
        message: str | None = None,
    ) -> Commit:
        """Turn the branch's draft into a commit on top of its head.

        The head moves to the new commit and the draft pointer is cleared in
        the same compare-and-swap.  A draft marked ``is_release`` also puts
        the new commit in the project's beta channel.

        Raises
        ------
        ValueError
            If the branch has no draft.
        ConcurrentModificationError
            If the head moved since it was read.
        """
        branch = await self.get_branch(branch_id)
        if branch.draft_hash is None:
            raise ValueError(f"Branch {branch_id!r} has no draft to promote")
        draft = await self._graph.get_draft(branch.draft_hash)

        async with self._session.begin_nested():
            commit = await self._graph.create_commit(
                draft.to_commit_params(parent_hashes=[branch.head_hash], branch_id=branch_id, message=message),
                author_id=author_id,
            )
            await self._swap(branch_id, branch.head_hash, head_hash=commit.hash, draft_hash=None)
            if draft.is_release:
                await self._releases.add(branch.project_id, commit.hash, ReleaseChannel.BETA)

        logger.info("Promoted draft %s of branch %s to %s", draft.hash[:12], branch.name, commit.hash[:12])
        return commit
