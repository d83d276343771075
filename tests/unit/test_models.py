"""Unit tests for the domain models in definy_core.models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import TypeAdapter, ValidationError

from definy_core.hashing import content_hash
from definy_core.models import (
    AnyCommit,
    Branch,
    Commit,
    CommitParams,
    DraftCommit,
    ExprRef,
    ExprSnapshot,
    ExprTerm,
    KernelTerm,
    PartDefSnapshot,
    ProjectMeta,
    TagTypeBody,
    TypeDefSnapshot,
    TypeTag,
    TypeTerm,
    new_id,
)

_T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _expr() -> ExprSnapshot:
    return ExprSnapshot(
        value=[
            ExprTerm(kind="kernel", kernel=KernelTerm.ADD),
            ExprTerm(kind="number", number=1.0),
            ExprTerm(kind="number", number=2.0),
        ]
    )


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


class TestLabel:
    @pytest.mark.parametrize("name", ["a", "master", "featureX", "v2", "a" * 63])
    def test_valid_labels(self, name):
        branch = Branch(id="b", name=name, project_id="p", head_hash="0" * 64, owner_id="u")
        assert branch.name == name

    @pytest.mark.parametrize("name", ["", "Master", "1abc", "feature-x", "with space", "a" * 64, "ünïcode"])
    def test_invalid_labels(self, name):
        with pytest.raises(ValidationError):
            Branch(id="b", name=name, project_id="p", head_hash="0" * 64, owner_id="u")

    def test_type_and_part_names_are_labels(self):
        with pytest.raises(ValidationError):
            TypeDefSnapshot(id="t", name="Bad Name", body=TagTypeBody())
        with pytest.raises(ValidationError):
            PartDefSnapshot(id="p", name="0part", expr=ExprRef.of(_expr()))


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class TestSnapshots:
    def test_snapshots_are_frozen(self):
        tag = TypeTag(name="nothing")
        with pytest.raises(ValidationError):
            tag.name = "other"  # type: ignore[misc]

    def test_extra_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            TypeTag(name="x", colour="red")  # type: ignore[call-arg]

    def test_type_body_discriminates_on_kind(self):
        snapshot = TypeDefSnapshot.model_validate(
            {"id": "t", "name": "maybe", "body": {"kind": "tags", "tags": [{"name": "just"}, {"name": "nothing"}]}}
        )
        assert isinstance(snapshot.body, TagTypeBody)
        assert [t.name for t in snapshot.body.tags] == ["just", "nothing"]

    def test_type_term_ref_needs_type_id(self):
        with pytest.raises(ValidationError):
            TypeTerm(kind="ref")
        with pytest.raises(ValidationError):
            TypeTerm(kind="(", type_id="t")
        assert TypeTerm(kind="ref", type_id="t").type_id == "t"

    def test_expr_term_payload_must_match_kind(self):
        with pytest.raises(ValidationError):
            ExprTerm(kind="number")
        with pytest.raises(ValidationError):
            ExprTerm(kind="number", number=1.0, part_id="p")
        with pytest.raises(ValidationError):
            ExprTerm(kind=")", kernel=KernelTerm.SUB)

    def test_expr_term_rejects_nan(self):
        with pytest.raises(ValidationError):
            ExprTerm(kind="number", number=float("nan"))

    def test_expr_ref_hash_must_match_body(self):
        expr = _expr()
        ref = ExprRef.of(expr)
        assert ref.hash == content_hash(expr)
        assert ref.snapshot() == expr
        with pytest.raises(ValidationError, match="does not match"):
            ExprRef(hash="f" * 64, body=list(expr.value))


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


class TestCommitSealing:
    def test_seal_derives_hash_from_body(self):
        commit = Commit.seal(created_at=_T0, message="first", author_id="u1")
        assert commit.hash == content_hash(commit.body())
        assert commit.compute_hash() == commit.hash
        assert "hash" not in commit.body()

    def test_seal_is_deterministic(self):
        a = Commit.seal(created_at=_T0, message="same", project=ProjectMeta(name="p"))
        b = Commit.seal(created_at=_T0, message="same", project=ProjectMeta(name="p"))
        assert a.hash == b.hash

    def test_timestamp_is_part_of_identity(self):
        a = Commit.seal(created_at=_T0, message="same")
        b = Commit.seal(created_at=datetime(2024, 1, 2, tzinfo=UTC), message="same")
        assert a.hash != b.hash

    def test_draft_and_commit_with_same_content_differ(self):
        commit = Commit.seal(created_at=_T0)
        draft = DraftCommit.seal(created_at=_T0)
        assert commit.hash != draft.hash

    def test_root_commit(self):
        root = Commit.seal(created_at=_T0)
        child = Commit.seal(created_at=_T0, parent_hashes=[root.hash])
        assert root.is_root
        assert not child.is_root

    def test_any_commit_discriminates_on_state(self):
        adapter = TypeAdapter(AnyCommit)
        draft = DraftCommit.seal(created_at=_T0, is_release=True)
        parsed = adapter.validate_python({**draft.body(), "hash": draft.hash})
        assert isinstance(parsed, DraftCommit)
        assert parsed.is_release is True


class TestCommitParams:
    def test_duplicate_parents_are_rejected(self):
        with pytest.raises(ValidationError, match="duplicates"):
            CommitParams(parent_hashes=["a" * 64, "a" * 64])

    def test_parent_hashes_must_be_hashes(self):
        with pytest.raises(ValidationError):
            CommitParams(parent_hashes=["not-a-hash"])

    def test_draft_to_commit_params_keeps_tree_and_meta(self):
        draft = DraftCommit.seal(created_at=_T0, message="wip", project=ProjectMeta(name="demo"))
        params = draft.to_commit_params(parent_hashes=["a" * 64], branch_id="b1")
        assert params.parent_hashes == ["a" * 64]
        assert params.branch_id == "b1"
        assert params.message == "wip"
        assert params.project.name == "demo"
        assert draft.to_commit_params(parent_hashes=[], branch_id=None, message="done").message == "done"


class TestNewId:
    def test_is_32_lowercase_hex(self):
        value = new_id()
        assert len(value) == 32
        assert int(value, 16) >= 0
        assert value == value.lower()

    def test_is_unique(self):
        assert len({new_id() for _ in range(100)}) == 100
