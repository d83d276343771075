"""Project directory: atomic project creation, lookup and release channels.

Creating a project writes four things: an empty initial commit, an empty
draft placeholder, the project row and its ``master`` branch.  All four go
into one savepoint, so a failure part-way leaves no trace of the project.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from definy_core.config import Settings
from definy_core.errors import DanglingReferenceError, NotFoundError
from definy_core.graph.commit_graph import CommitGraph
from definy_core.models.branch import MASTER_BRANCH_DESCRIPTION, MASTER_BRANCH_NAME, Project, ReleaseChannel
from definy_core.models.commit import CommitParams, DraftParams, ProjectMeta
from definy_core.models.common import new_id, utcnow
from definy_core.state.database import guarded
from definy_core.state.releases import ReleaseRepository
from definy_core.state.tables import BranchTable, ProjectTable

logger = logging.getLogger(__name__)

INITIAL_COMMIT_MESSAGE = "initial commit"


class ProjectDirectory:
    """Create and look up projects.

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
        Source of new project and branch ids.
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
    ) -> None:
        self._session = session
        self._graph = graph or CommitGraph(
            session, verify_references=verify_references, timeout=timeout, clock=clock
        )
        self._releases = ReleaseRepository(session, timeout=timeout, clock=clock)
        self._timeout = timeout
        self._clock = clock
        self._new_id = id_factory

    @classmethod
    def from_settings(
        cls,
        session: AsyncSession,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ) -> ProjectDirectory:
        return cls(
            session,
            graph=CommitGraph.from_settings(session, settings, clock=clock),
            timeout=settings.store_timeout_seconds,
            clock=clock,
            id_factory=id_factory,
        )

    async def _run(self, operation: str, stmt: Any) -> Any:
        return await guarded(operation, self._session.execute(stmt), self._timeout)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_project(self, owner_id: str, name: str) -> Project:
        """Create a project with its initial commit and master branch.

        Parameters
        ----------
        owner_id:
            Account that owns the project and its master branch.
        name:
            Display name, recorded in the initial commit's project metadata.

        Returns
        -------
        Project
            The new project.  Its master branch head is the initial commit
            and its draft is an empty placeholder.

        Raises
        ------
        ValueError
            If an id collision prevents the rows from being written.  No
            row of the project is left behind.
        """
        project_id = self._new_id()
        master_branch_id = self._new_id()
        meta = ProjectMeta(name=name)

        try:
            async with self._session.begin_nested():
                initial = await self._graph.create_commit(
                    CommitParams(branch_id=master_branch_id, message=INITIAL_COMMIT_MESSAGE, project=meta),
                    author_id=owner_id,
                )
                draft = await self._graph.create_draft(DraftParams(project=meta), author_id=owner_id)

                now = self._clock()
                self._session.add(
                    ProjectTable(
                        id=project_id,
                        owner_id=owner_id,
                        name=name,
                        master_branch_id=master_branch_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await guarded("insert project", self._session.flush(), self._timeout)
                self._session.add(
                    BranchTable(
                        id=master_branch_id,
                        project_id=project_id,
                        name=MASTER_BRANCH_NAME,
                        description=MASTER_BRANCH_DESCRIPTION,
                        owner_id=owner_id,
                        head_hash=initial.hash,
                        draft_hash=draft.hash,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await guarded("insert master branch", self._session.flush(), self._timeout)
        except IntegrityError as exc:
            logger.warning("Project creation for owner %s rolled back: %s", owner_id, exc.orig)
            raise ValueError(f"Could not create project {name!r}: identifier already in use") from exc

        logger.info(
            "Created project %s (%s) master=%s initial=%s",
            name,
            project_id,
            master_branch_id,
            initial.hash[:12],
        )
        return await self.get_project(project_id)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_project(self, project_id: str) -> Project:
        """Return the project with *project_id*.

        Raises
        ------
        NotFoundError
            With kind ``"project"`` if it does not exist.
        """
        stmt = select(ProjectTable).where(ProjectTable.id == project_id).execution_options(populate_existing=True)
        row = (await self._run("get project", stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("project", project_id)
        return await self._to_model(row)

    async def list_projects(self, owner_id: str | None = None) -> list[Project]:
        """Return all projects, or those of *owner_id*, oldest first."""
        stmt = select(ProjectTable).order_by(ProjectTable.created_at, ProjectTable.id)
        if owner_id is not None:
            stmt = stmt.where(ProjectTable.owner_id == owner_id)
        rows = (await self._run("list projects", stmt.execution_options(populate_existing=True))).scalars().all()
        return [await self._to_model(row) for row in rows]

    async def _to_model(self, row: ProjectTable) -> Project:
        stmt = (
            select(BranchTable.id)
            .where(BranchTable.project_id == row.id)
            .order_by(BranchTable.created_at, BranchTable.name)
        )
        branch_ids = list((await self._run("list project branches", stmt)).scalars().all())
        releases = await self._releases.list_for_project(row.id)
        return Project(
            id=row.id,
            owner_id=row.owner_id,
            name=row.name,
            master_branch_id=row.master_branch_id,
            branch_ids=branch_ids,
            stable_released=releases[ReleaseChannel.STABLE],
            beta_released=releases[ReleaseChannel.BETA],
            created_at=row.created_at,
        )

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    async def release_commit(self, project_id: str, commit_hash: str, channel: ReleaseChannel | str) -> bool:
        """Add a commit to one of the project's release channels.

        Returns ``False`` if the commit was already released on that channel.

        Raises
        ------
        NotFoundError
            If the project does not exist.
        DanglingReferenceError
            If *commit_hash* is not a stored commit.
        ValueError
            If the commit is not in the history of any of the project's
            branch heads.
        """
        channel = ReleaseChannel(channel)
        await self.get_project(project_id)
        if not await self._graph.commit_exists(commit_hash):
            raise DanglingReferenceError("commit", commit_hash)
        if not await self._in_project_history(project_id, commit_hash):
            raise ValueError(f"Commit {commit_hash[:12]} is not part of project {project_id!r}")
        return await self._releases.add(project_id, commit_hash, channel)

    async def _in_project_history(self, project_id: str, commit_hash: str) -> bool:
        stmt = select(BranchTable.head_hash).where(BranchTable.project_id == project_id)
        heads = set((await self._run("list branch heads", stmt)).scalars().all())
        if commit_hash in heads:
            return True
        dag = await self._graph.load_dag(heads)
        return commit_hash in dag

    async def released_commits(self, project_id: str, channel: ReleaseChannel | str) -> list[str]:
        """Return the commits released on *channel*, in release order."""
        project = await self.get_project(project_id)
        if ReleaseChannel(channel) is ReleaseChannel.STABLE:
            return project.stable_released
        return project.beta_released
