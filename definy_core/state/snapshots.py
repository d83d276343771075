"""Typed repositories for module, type, part and expression snapshots.

Each repository hashes a snapshot with :func:`~definy_core.hashing.content_hash`
and delegates storage to an :class:`~definy_core.state.object_store.ObjectStore`
of the matching kind.  Adding the same snapshot twice yields the same hash
and stores a single row.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from definy_core.hashing import content_hash
from definy_core.models.common import utcnow
from definy_core.models.snapshot import (
    ExprSnapshot,
    ModuleSnapshot,
    PartDefSnapshot,
    TypeDefSnapshot,
)
from definy_core.state.object_store import ObjectKind, ObjectStore

logger = logging.getLogger(__name__)

SnapshotT = TypeVar("SnapshotT", bound=BaseModel)


class _SnapshotRepository(Generic[SnapshotT]):
    """Shared add/get logic; subclasses pin the kind and model class."""

    kind: ObjectKind
    model: type[SnapshotT]

    def __init__(
        self,
        session: AsyncSession,
        *,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._store = ObjectStore(session, self.kind, timeout=timeout, clock=clock)

    @property
    def store(self) -> ObjectStore:
        return self._store

    async def add(self, snapshot: SnapshotT) -> str:
        """Store *snapshot* if absent and return its content hash."""
        body = snapshot.model_dump(mode="json")
        return await self._store.put(content_hash(body), body)

    async def get(self, hash: str) -> SnapshotT:  # noqa: A002
        """Fetch the snapshot stored under *hash*.

        Raises
        ------
        NotFoundError
            If no snapshot of this kind has that hash.
        """
        body = await self._store.get(hash)
        return self.model.model_validate(body)

    async def exists(self, hash: str) -> bool:  # noqa: A002
        return await self._store.exists(hash)


class ModuleSnapshotRepository(_SnapshotRepository[ModuleSnapshot]):
    kind = ObjectKind.MODULE
    model = ModuleSnapshot


class TypeDefSnapshotRepository(_SnapshotRepository[TypeDefSnapshot]):
    kind = ObjectKind.TYPE_DEF
    model = TypeDefSnapshot


class ExprSnapshotRepository(_SnapshotRepository[ExprSnapshot]):
    kind = ObjectKind.EXPR
    model = ExprSnapshot


class PartDefSnapshotRepository(_SnapshotRepository[PartDefSnapshot]):
    """Part definitions, stored together with the expression they embed.

    The embedded :class:`~definy_core.models.snapshot.ExprRef` has already
    been checked against its body when the model was validated, so the
    expression row written here is always the one its hash names.
    """

    kind = ObjectKind.PART_DEF
    model = PartDefSnapshot

    def __init__(
        self,
        session: AsyncSession,
        *,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(session, timeout=timeout, clock=clock)
        self._exprs = ExprSnapshotRepository(session, timeout=timeout, clock=clock)

    async def add(self, snapshot: PartDefSnapshot) -> str:
        expr_hash = await self._exprs.add(snapshot.expr.snapshot())
        logger.debug("Part %s uses expression %s", snapshot.id, expr_hash[:12])
        return await super().add(snapshot)
