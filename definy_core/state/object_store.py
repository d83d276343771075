"""Append-only, content-addressed object storage.

Each immutable kind lives in its own table keyed by the SHA-256 hash of the
row's JSON body.  Writes are ``INSERT ... ON CONFLICT DO NOTHING``: storing
an object that already exists is a successful no-op, and there is no update
or delete path.  Repositories operate within the caller's transaction
boundary and only ``flush()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from definy_core.errors import NotFoundError
from definy_core.hashing import content_hash, is_content_hash
from definy_core.models.common import utcnow
from definy_core.state.database import dialect_insert_nothing, guarded
from definy_core.state.tables import (
    Base,
    CommitTable,
    DraftCommitTable,
    ExprSnapshotTable,
    ModuleSnapshotTable,
    PartDefSnapshotTable,
    TypeDefSnapshotTable,
)

logger = logging.getLogger(__name__)

# Upper bound on the number of hashes bound into a single IN (...) clause.
_IN_CHUNK_SIZE = 500


class ObjectKind(str, Enum):
    """Immutable object kinds and the names used for them in errors."""

    MODULE = "module"
    TYPE_DEF = "type_def"
    PART_DEF = "part_def"
    EXPR = "expr"
    COMMIT = "commit"
    DRAFT_COMMIT = "draft_commit"


_TABLES: dict[ObjectKind, type[Base]] = {
    ObjectKind.MODULE: ModuleSnapshotTable,
    ObjectKind.TYPE_DEF: TypeDefSnapshotTable,
    ObjectKind.PART_DEF: PartDefSnapshotTable,
    ObjectKind.EXPR: ExprSnapshotTable,
    ObjectKind.COMMIT: CommitTable,
    ObjectKind.DRAFT_COMMIT: DraftCommitTable,
}


class ObjectStore:
    """Create-if-absent storage for one immutable object kind.

    Parameters
    ----------
    session:
        The caller's async session.
    kind:
        Which table to address.
    timeout:
        Deadline in seconds for each operation; exceeding it raises
        :class:`~definy_core.errors.StoreUnavailableError`.
    clock:
        Source of ``created_at`` for new rows.
    """

    def __init__(
        self,
        session: AsyncSession,
        kind: ObjectKind,
        *,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._kind = kind
        self._table: Any = _TABLES[kind]
        self._timeout = timeout
        self._clock = clock

    @property
    def kind(self) -> ObjectKind:
        return self._kind

    # -- writes -------------------------------------------------------------

    async def put(self, hash: str, body: dict[str, Any]) -> str:  # noqa: A002
        """Store *body* under *hash* unless an object with that hash exists.

        The hash must be the content hash of *body*; a mismatch is a
        programming error and raises ``ValueError``.

        Returns
        -------
        str
            The hash, unchanged.
        """
        if content_hash(body) != hash:
            raise ValueError(f"{self._kind.value} body does not match hash {hash[:12]}")
        return await guarded(f"put {self._kind.value}", self._put(hash, body), self._timeout)

    async def _put(self, hash: str, body: dict[str, Any]) -> str:  # noqa: A002
        result = await dialect_insert_nothing(
            self._session,
            self._table,
            values={"hash": hash, "body": body, "created_at": self._clock()},
            index_elements=["hash"],
        )
        await self._session.flush()
        if (result.rowcount or 0) > 0:
            logger.info("Stored %s %s", self._kind.value, hash[:12])
        else:
            logger.debug("Skipped existing %s %s", self._kind.value, hash[:12])
        return hash

    # -- reads --------------------------------------------------------------

    async def get(self, hash: str) -> dict[str, Any]:  # noqa: A002
        """Return the stored body for *hash*.

        Raises
        ------
        NotFoundError
            If no object of this kind has that hash.
        """
        body = await guarded(f"get {self._kind.value}", self._get(hash), self._timeout)
        if body is None:
            raise NotFoundError(self._kind.value, hash)
        return body

    async def _get(self, hash: str) -> dict[str, Any] | None:  # noqa: A002
        if not is_content_hash(hash):
            return None
        stmt = select(self._table.body).where(self._table.hash == hash)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_many(self, hashes: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Return ``{hash: body}`` for every hash in *hashes* that is stored.

        Absent hashes are simply left out; callers decide whether that is an
        error.
        """
        wanted = sorted({h for h in hashes if is_content_hash(h)})
        return await guarded(f"get_many {self._kind.value}", self._get_many(wanted), self._timeout)

    async def _get_many(self, wanted: list[str]) -> dict[str, dict[str, Any]]:
        bodies: dict[str, dict[str, Any]] = {}
        for start in range(0, len(wanted), _IN_CHUNK_SIZE):
            chunk = wanted[start : start + _IN_CHUNK_SIZE]
            stmt = select(self._table.hash, self._table.body).where(self._table.hash.in_(chunk))
            result = await self._session.execute(stmt)
            for row in result.all():
                bodies[row.hash] = row.body
        return bodies

    async def exists(self, hash: str) -> bool:  # noqa: A002
        return not await self.missing([hash])

    async def missing(self, hashes: Iterable[str]) -> set[str]:
        """Return the subset of *hashes* that are not stored."""
        wanted = set(hashes)
        return await guarded(f"missing {self._kind.value}", self._missing(wanted), self._timeout)

    async def _missing(self, wanted: set[str]) -> set[str]:
        candidates = sorted(h for h in wanted if is_content_hash(h))
        found: set[str] = set()
        for start in range(0, len(candidates), _IN_CHUNK_SIZE):
            chunk = candidates[start : start + _IN_CHUNK_SIZE]
            result = await self._session.execute(select(self._table.hash).where(self._table.hash.in_(chunk)))
            found.update(result.scalars().all())
        return wanted - found

    async def count(self) -> int:
        """Return the number of stored objects of this kind."""
        stmt = select(func.count()).select_from(self._table)
        return await guarded(f"count {self._kind.value}", self._scalar(stmt), self._timeout)

    async def _scalar(self, stmt: Any) -> Any:
        result = await self._session.execute(stmt)
        return result.scalar_one()
