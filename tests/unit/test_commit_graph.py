"""Unit tests for CommitGraph creation, lookup and traversal."""

from __future__ import annotations

from datetime import UTC, datetime

import networkx as nx
import pytest
from pydantic import ValidationError

from definy_core.errors import DanglingReferenceError, NotFoundError
from definy_core.graph.commit_graph import CommitGraph
from definy_core.models import CommitParams, CommitTree, DraftParams, ItemRef, ModuleSnapshot, ProjectMeta
from definy_core.state.snapshots import ModuleSnapshotRepository


async def _chain(graph: CommitGraph, length: int, parent: str | None = None, label: str = "c") -> list[str]:
    """Create *length* commits in a line and return their hashes, oldest first."""
    hashes: list[str] = []
    for n in range(length):
        parents = [parent] if parent else []
        commit = await graph.create_commit(
            CommitParams(parent_hashes=parents, message=f"{label}{n}"), author_id="u1"
        )
        hashes.append(commit.hash)
        parent = commit.hash
    return hashes


async def _merge(graph: CommitGraph, *parents: str, message: str = "merge") -> str:
    commit = await graph.create_commit(CommitParams(parent_hashes=list(parents), message=message), author_id="u1")
    return commit.hash


# ---------------------------------------------------------------------------
# create_commit / get_commit
# ---------------------------------------------------------------------------


class TestCreateCommit:
    @pytest.mark.asyncio
    async def test_round_trip(self, session, graph):
        modules = ModuleSnapshotRepository(session)
        module_hash = await modules.add(ModuleSnapshot(name="Main"))
        params = CommitParams(
            message="add main",
            branch_id="b1",
            project=ProjectMeta(name="demo", summary="a demo"),
            tree=CommitTree(modules=[ItemRef(id="m1", hash=module_hash)]),
        )

        created = await graph.create_commit(params, author_id="u1")
        loaded = await CommitGraph(session).get_commit(created.hash)

        assert loaded == created
        assert loaded.hash == loaded.compute_hash()
        assert loaded.tree.modules[0].hash == module_hash
        assert loaded.author_id == "u1"

    @pytest.mark.asyncio
    async def test_timestamp_comes_from_clock(self, graph, clock):
        expected = clock.now
        commit = await graph.create_commit(CommitParams(), author_id=None)
        assert commit.created_at == expected
        assert commit.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_same_params_at_different_times_differ(self, graph):
        a = await graph.create_commit(CommitParams(message="same"), author_id="u1")
        b = await graph.create_commit(CommitParams(message="same"), author_id="u1")
        assert a.hash != b.hash

    @pytest.mark.asyncio
    async def test_missing_parent_is_rejected(self, graph):
        with pytest.raises(DanglingReferenceError) as exc_info:
            await graph.create_commit(CommitParams(parent_hashes=["d" * 64]), author_id="u1")
        assert exc_info.value.kind == "commit"
        assert exc_info.value.hash == "d" * 64

    @pytest.mark.asyncio
    async def test_missing_dependency_is_rejected(self, graph):
        params = CommitParams(tree=CommitTree(dependencies=["e" * 64]))
        with pytest.raises(DanglingReferenceError) as exc_info:
            await graph.create_commit(params, author_id="u1")
        assert exc_info.value.kind == "commit"

    @pytest.mark.asyncio
    async def test_missing_tree_entry_names_its_kind(self, graph):
        params = CommitParams(tree=CommitTree(part_defs=[ItemRef(id="p", hash="f" * 64)]))
        with pytest.raises(DanglingReferenceError) as exc_info:
            await graph.create_commit(params, author_id="u1")
        assert exc_info.value.kind == "part_def"

    @pytest.mark.asyncio
    async def test_reference_checks_can_be_disabled(self, session, clock):
        graph = CommitGraph(session, verify_references=False, clock=clock)
        commit = await graph.create_commit(CommitParams(parent_hashes=["d" * 64]), author_id="u1")
        assert commit.parent_hashes == ["d" * 64]

    def test_duplicate_parents_are_rejected(self):
        with pytest.raises(ValidationError):
            CommitParams(parent_hashes=["a" * 64, "a" * 64])

    @pytest.mark.asyncio
    async def test_get_missing_commit(self, graph):
        with pytest.raises(NotFoundError) as exc_info:
            await graph.get_commit("a" * 64)
        assert exc_info.value.kind == "commit"


class TestDrafts:
    @pytest.mark.asyncio
    async def test_round_trip(self, graph):
        draft = await graph.create_draft(DraftParams(message="wip", is_release=True, project=ProjectMeta(name="x")))
        loaded = await graph.get_draft(draft.hash)
        assert loaded == draft
        assert loaded.state == "draft"

    @pytest.mark.asyncio
    async def test_drafts_are_not_commits(self, graph):
        draft = await graph.create_draft(DraftParams())
        with pytest.raises(NotFoundError):
            await graph.get_commit(draft.hash)
        assert not await graph.commit_exists(draft.hash)
        assert await graph.draft_exists(draft.hash)

    @pytest.mark.asyncio
    async def test_draft_tree_references_are_checked(self, graph):
        params = DraftParams(tree=CommitTree(modules=[ItemRef(id="m", hash="c" * 64)]))
        with pytest.raises(DanglingReferenceError) as exc_info:
            await graph.create_draft(params)
        assert exc_info.value.kind == "module"


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


class TestHistory:
    @pytest.mark.asyncio
    async def test_linear_history_is_newest_first(self, graph):
        hashes = await _chain(graph, 4)
        history = await graph.history(hashes[-1])
        assert [c.hash for c in history] == list(reversed(hashes))

    @pytest.mark.asyncio
    async def test_limit(self, graph):
        hashes = await _chain(graph, 5)
        history = await graph.history(hashes[-1], limit=2)
        assert [c.hash for c in history] == [hashes[4], hashes[3]]
        assert await graph.history(hashes[-1], limit=0) == []

    @pytest.mark.asyncio
    async def test_merge_interleaves_by_time_and_visits_once(self, graph):
        (root,) = await _chain(graph, 1, label="root")
        left = await _chain(graph, 1, parent=root, label="left")
        right = await _chain(graph, 1, parent=root, label="right")
        merge = await _merge(graph, left[0], right[0])

        history = [c.hash for c in await graph.history(merge)]

        assert history == [merge, right[0], left[0], root]

    @pytest.mark.asyncio
    async def test_unknown_head(self, graph):
        with pytest.raises(NotFoundError):
            await graph.history("a" * 64)


class TestAncestry:
    @pytest.mark.asyncio
    async def test_ancestors_excludes_self(self, graph):
        hashes = await _chain(graph, 3)
        assert await graph.ancestors(hashes[2]) == {hashes[0], hashes[1]}
        assert await graph.ancestors(hashes[0]) == set()

    @pytest.mark.asyncio
    async def test_is_ancestor(self, graph):
        hashes = await _chain(graph, 3)
        assert await graph.is_ancestor(hashes[0], hashes[2])
        assert not await graph.is_ancestor(hashes[2], hashes[0])
        assert await graph.is_ancestor(hashes[1], hashes[1])

    @pytest.mark.asyncio
    async def test_common_ancestor_of_fork(self, graph):
        base = await _chain(graph, 2, label="base")
        left = await _chain(graph, 2, parent=base[-1], label="left")
        right = await _chain(graph, 3, parent=base[-1], label="right")

        ancestor = await graph.common_ancestor(left[-1], right[-1])

        assert ancestor is not None
        assert ancestor.hash == base[-1]

    @pytest.mark.asyncio
    async def test_common_ancestor_when_one_contains_the_other(self, graph):
        hashes = await _chain(graph, 3)
        ancestor = await graph.common_ancestor(hashes[0], hashes[2])
        assert ancestor is not None
        assert ancestor.hash == hashes[0]

    @pytest.mark.asyncio
    async def test_common_ancestor_of_unrelated_roots(self, graph):
        (a,) = await _chain(graph, 1, label="a")
        (b,) = await _chain(graph, 1, label="b")
        assert await graph.common_ancestor(a, b) is None

    @pytest.mark.asyncio
    async def test_criss_cross_picks_newest_best_candidate(self, graph):
        (root,) = await _chain(graph, 1, label="root")
        (x,) = await _chain(graph, 1, parent=root, label="x")
        (y,) = await _chain(graph, 1, parent=root, label="y")
        m1 = await _merge(graph, x, y, message="m1")
        m2 = await _merge(graph, y, x, message="m2")

        ancestor = await graph.common_ancestor(m1, m2)

        # Both x and y are best common ancestors; y was created later.
        assert ancestor is not None
        assert ancestor.hash == y


class TestLoadDag:
    @pytest.mark.asyncio
    async def test_edges_point_from_parent_to_child(self, graph):
        hashes = await _chain(graph, 3)
        dag = await graph.load_dag([hashes[-1]])

        assert set(dag.nodes) == set(hashes)
        assert set(dag.edges) == {(hashes[0], hashes[1]), (hashes[1], hashes[2])}
        assert nx.is_directed_acyclic_graph(dag)
        assert dag.nodes[hashes[0]]["commit"].message == "c0"

    @pytest.mark.asyncio
    async def test_multiple_heads_share_history(self, graph):
        base = await _chain(graph, 2, label="base")
        left = await _chain(graph, 1, parent=base[-1], label="left")
        right = await _chain(graph, 1, parent=base[-1], label="right")

        dag = await graph.load_dag([left[0], right[0]])

        assert dag.number_of_nodes() == 4
        assert set(dag.successors(base[-1])) == {left[0], right[0]}
        assert nx.is_directed_acyclic_graph(dag)

    @pytest.mark.asyncio
    async def test_loaded_commits_match_stored_hashes(self, graph):
        hashes = await _chain(graph, 3)
        dag = await graph.load_dag([hashes[-1]])
        for node, data in dag.nodes(data=True):
            assert data["commit"].compute_hash() == node

    @pytest.mark.asyncio
    async def test_timestamps_survive_storage_as_utc(self, session, graph):
        hashes = await _chain(graph, 1)
        commit = await CommitGraph(session).get_commit(hashes[0])
        assert commit.created_at == datetime(2024, 1, 1, tzinfo=UTC)
