"""Stable and beta release sets of a project.

Each channel is a set of commit hashes: releasing a commit that is already
in the channel is a no-op.  Rows are ordered by release time when listed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from definy_core.models.branch import ReleaseChannel
from definy_core.models.common import utcnow
from definy_core.state.database import dialect_insert_nothing, guarded
from definy_core.state.tables import ProjectReleaseTable

logger = logging.getLogger(__name__)


class ReleaseRepository:
    """Read/write access to the ``project_releases`` table."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._clock = clock

    async def add(self, project_id: str, commit_hash: str, channel: ReleaseChannel) -> bool:
        """Add *commit_hash* to the channel; return ``False`` if it was already there."""
        return await guarded("release commit", self._add(project_id, commit_hash, channel), self._timeout)

    async def _add(self, project_id: str, commit_hash: str, channel: ReleaseChannel) -> bool:
        result = await dialect_insert_nothing(
            self._session,
            ProjectReleaseTable,
            values={
                "project_id": project_id,
                "commit_hash": commit_hash,
                "channel": channel.value,
                "released_at": self._clock(),
            },
            index_elements=["project_id", "commit_hash", "channel"],
        )
        await self._session.flush()
        added = (result.rowcount or 0) > 0
        if added:
            logger.info("Released commit %s to %s for project %s", commit_hash[:12], channel.value, project_id)
        return added

    async def list_for_project(self, project_id: str) -> dict[ReleaseChannel, list[str]]:
        """Return ``{channel: [commit_hash, ...]}`` in release order."""
        return await guarded("list releases", self._list_for_project(project_id), self._timeout)

    async def _list_for_project(self, project_id: str) -> dict[ReleaseChannel, list[str]]:
        stmt = (
            select(ProjectReleaseTable.channel, ProjectReleaseTable.commit_hash)
            .where(ProjectReleaseTable.project_id == project_id)
            .order_by(ProjectReleaseTable.released_at, ProjectReleaseTable.id)
        )
        result = await self._session.execute(stmt)
        releases: dict[ReleaseChannel, list[str]] = {channel: [] for channel in ReleaseChannel}
        for row in result.all():
            releases[ReleaseChannel(row.channel)].append(row.commit_hash)
        return releases
