"""Commit creation and history traversal over the content-addressed DAG.

Commits are immutable and name their parents by hash, so the graph can only
grow at the edges: a commit cannot be created before its parents exist
(when reference checking is on), and no existing commit can be made to
point at a newer one.  The traversal helpers load the reachable part of the
graph into a :class:`networkx.DiGraph` with edges pointing **from** parent
**to** child, mirroring the order in which history was written.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable, Iterable
from datetime import datetime

import networkx as nx
from sqlalchemy.ext.asyncio import AsyncSession

from definy_core.config import Settings
from definy_core.errors import DanglingReferenceError, NotFoundError
from definy_core.models.commit import Commit, CommitParams, CommitTree, DraftCommit, DraftParams
from definy_core.models.common import utcnow
from definy_core.state.object_store import ObjectKind, ObjectStore

logger = logging.getLogger(__name__)


class CommitGraph:
    """Create, fetch and walk commits and draft commits.

    Parameters
    ----------
    session:
        The caller's async session; writes are flushed, never committed.
    verify_references:
        When ``True`` every parent, dependency and tree entry must already
        be stored, otherwise :class:`DanglingReferenceError` is raised.
    timeout:
        Per-operation store deadline in seconds.
    clock:
        Source of commit timestamps.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        verify_references: bool = True,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._verify = verify_references
        self._clock = clock
        self._stores = {kind: ObjectStore(session, kind, timeout=timeout, clock=clock) for kind in ObjectKind}
        # Read-through cache of loaded commits.  Existence checks bypass it.
        self._cache: dict[str, Commit] = {}

    @classmethod
    def from_settings(
        cls,
        session: AsyncSession,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> CommitGraph:
        return cls(
            session,
            verify_references=settings.verify_references,
            timeout=settings.store_timeout_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_commit(self, params: CommitParams, *, author_id: str | None) -> Commit:
        """Seal *params* into a new commit and store it.

        The timestamp comes from the injected clock and is part of the
        hashed content.

        Raises
        ------
        DanglingReferenceError
            If reference checking is on and a parent, dependency or tree
            entry is not stored.
        """
        if self._verify:
            await self._check_commits_exist(params.parent_hashes)
            await self._check_tree(params.tree)

        commit = Commit.seal(
            parent_hashes=params.parent_hashes,
            branch_id=params.branch_id,
            message=params.message,
            author_id=author_id,
            created_at=self._clock(),
            project=params.project,
            tree=params.tree,
        )
        await self._stores[ObjectKind.COMMIT].put(commit.hash, commit.body())
        logger.info(
            "Created commit %s parents=%s branch=%s",
            commit.hash[:12],
            [p[:12] for p in commit.parent_hashes],
            commit.branch_id,
        )
        return commit

    async def create_draft(self, params: DraftParams, *, author_id: str | None = None) -> DraftCommit:
        """Store a draft commit holding an uncommitted working tree."""
        if self._verify:
            await self._check_tree(params.tree)

        draft = DraftCommit.seal(
            message=params.message,
            is_release=params.is_release,
            author_id=author_id,
            created_at=self._clock(),
            project=params.project,
            tree=params.tree,
        )
        await self._stores[ObjectKind.DRAFT_COMMIT].put(draft.hash, draft.body())
        logger.info("Created draft commit %s release=%s", draft.hash[:12], draft.is_release)
        return draft

    async def _check_commits_exist(self, hashes: Iterable[str]) -> None:
        missing = await self._stores[ObjectKind.COMMIT].missing(hashes)
        if missing:
            raise DanglingReferenceError(ObjectKind.COMMIT.value, sorted(missing)[0])

    async def _check_tree(self, tree: CommitTree) -> None:
        await self._check_commits_exist(tree.dependencies)
        for kind, refs in (
            (ObjectKind.MODULE, tree.modules),
            (ObjectKind.TYPE_DEF, tree.type_defs),
            (ObjectKind.PART_DEF, tree.part_defs),
        ):
            missing = await self._stores[kind].missing(ref.hash for ref in refs)
            if missing:
                raise DanglingReferenceError(kind.value, sorted(missing)[0])

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_commit(self, hash: str) -> Commit:  # noqa: A002
        """Return the commit stored under *hash*.

        Raises
        ------
        NotFoundError
            With kind ``"commit"`` if no such commit exists.
        """
        cached = self._cache.get(hash)
        if cached is not None:
            return cached
        body = await self._stores[ObjectKind.COMMIT].get(hash)
        commit = Commit.model_validate({**body, "hash": hash})
        self._cache[hash] = commit
        return commit

    async def get_draft(self, hash: str) -> DraftCommit:  # noqa: A002
        body = await self._stores[ObjectKind.DRAFT_COMMIT].get(hash)
        return DraftCommit.model_validate({**body, "hash": hash})

    async def commit_exists(self, hash: str) -> bool:  # noqa: A002
        return await self._stores[ObjectKind.COMMIT].exists(hash)

    async def draft_exists(self, hash: str) -> bool:  # noqa: A002
        return await self._stores[ObjectKind.DRAFT_COMMIT].exists(hash)

    async def _get_commits(self, hashes: Iterable[str]) -> list[Commit]:
        """Fetch several commits with one query per chunk of uncached hashes."""
        wanted = list(dict.fromkeys(hashes))
        uncached = [h for h in wanted if h not in self._cache]
        if uncached:
            bodies = await self._stores[ObjectKind.COMMIT].get_many(uncached)
            for h, body in bodies.items():
                self._cache[h] = Commit.model_validate({**body, "hash": h})
        for h in wanted:
            if h not in self._cache:
                raise NotFoundError(ObjectKind.COMMIT.value, h)
        return [self._cache[h] for h in wanted]

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def load_dag(self, heads: Iterable[str]) -> nx.DiGraph:
        """Load every commit reachable from *heads* into a directed graph.

        Nodes are commit hashes carrying the :class:`Commit` under the
        ``"commit"`` key.  Edges point from parent to child.

        Raises
        ------
        NotFoundError
            If a head or any reachable parent is not stored.
        """
        dag = nx.DiGraph()
        frontier = list(dict.fromkeys(heads))
        while frontier:
            commits = await self._get_commits(frontier)
            next_frontier: list[str] = []
            for commit in commits:
                dag.add_node(commit.hash, commit=commit)
                for parent in commit.parent_hashes:
                    if parent not in dag:
                        next_frontier.append(parent)
                    dag.add_edge(parent, commit.hash)
            frontier = [h for h in dict.fromkeys(next_frontier) if "commit" not in dag.nodes[h]]
        return dag

    async def history(self, head: str, limit: int | None = None) -> list[Commit]:
        """Return *head* and its ancestors, newest first.

        Commits are ordered by ``created_at`` descending with the hash as a
        tie-breaker, so merges interleave their parents' histories instead
        of listing one side first.
        """
        if limit is not None and limit <= 0:
            return []
        start = await self.get_commit(head)
        heap: list[tuple[float, int, Commit]] = []
        seen = {start.hash}
        self._push(heap, start)
        result: list[Commit] = []
        while heap and (limit is None or len(result) < limit):
            _, _, commit = heapq.heappop(heap)
            result.append(commit)
            parents = [p for p in commit.parent_hashes if p not in seen]
            seen.update(parents)
            for parent in await self._get_commits(parents):
                self._push(heap, parent)
        return result

    @staticmethod
    def _push(heap: list[tuple[float, int, Commit]], commit: Commit) -> None:
        # heapq is a min-heap; negate both keys to pop the newest first.
        heapq.heappush(heap, (-commit.created_at.timestamp(), -int(commit.hash, 16), commit))

    async def ancestors(self, hash: str) -> set[str]:  # noqa: A002
        """Return the hashes of every proper ancestor of *hash*."""
        dag = await self.load_dag([hash])
        return set(nx.ancestors(dag, hash))

    async def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Return ``True`` if *ancestor* is reachable from *descendant* via parents.

        A commit counts as its own ancestor.
        """
        if ancestor == descendant:
            await self.get_commit(ancestor)
            return True
        return ancestor in await self.ancestors(descendant)

    async def common_ancestor(self, a: str, b: str) -> Commit | None:
        """Return the best common ancestor of *a* and *b*, or ``None``.

        Among the shared ancestors (each commit included in its own set),
        only those with no descendant also in the shared set qualify.  If
        several qualify, as after criss-cross merges, the newest one wins
        with the hash as a tie-breaker.
        """
        dag = await self.load_dag([a, b])
        shared = (nx.ancestors(dag, a) | {a}) & (nx.ancestors(dag, b) | {b})
        if not shared:
            return None
        best = [c for c in shared if not (nx.descendants(dag, c) & shared)]
        winner = max(best, key=lambda h: (dag.nodes[h]["commit"].created_at, h))
        return dag.nodes[winner]["commit"]
