"""Immutable snapshot models for modules, type definitions, parts and expressions.

A snapshot is identified solely by the content hash of its canonical form,
so none of these models carries its own hash.  Trees refer to snapshots
through :class:`~definy_core.models.common.ItemRef` pairs, never by the
mutable item id alone.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import Field, model_validator

from definy_core.hashing import content_hash
from definy_core.models.common import ContentHash, EntityId, FrozenModel, ItemRef, Label


class KernelType(str, Enum):
    """Types implemented natively by the runtime."""

    FLOAT64 = "float64"
    STRING = "string"
    ARRAY = "array"
    FUNCTION = "function"


class KernelTerm(str, Enum):
    """Operators implemented natively by the runtime."""

    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"


# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------


class TypeTag(FrozenModel):
    """One alternative of a tagged-union type."""

    name: Label
    description: str = ""
    parameters: list[EntityId] = Field(default_factory=list)


class TagTypeBody(FrozenModel):
    kind: Literal["tags"] = "tags"
    tags: list[TypeTag] = Field(default_factory=list)


class KernelTypeBody(FrozenModel):
    kind: Literal["kernel"] = "kernel"
    kernel: KernelType


TypeBody = Annotated[TagTypeBody | KernelTypeBody, Field(discriminator="kind")]


class TypeTerm(FrozenModel):
    """A token of a part's type signature: a parenthesis or a type reference."""

    kind: Literal["(", ")", "ref"]
    type_id: EntityId | None = None

    @model_validator(mode="after")
    def _check_payload(self) -> TypeTerm:
        if self.kind == "ref" and self.type_id is None:
            raise ValueError("type reference term requires type_id")
        if self.kind != "ref" and self.type_id is not None:
            raise ValueError(f"parenthesis term {self.kind!r} must not carry type_id")
        return self


class TypeDefSnapshot(FrozenModel):
    """Immutable content of a type definition at one point in history."""

    id: EntityId
    name: Label
    description: str = ""
    body: TypeBody


# ---------------------------------------------------------------------------
# Expressions and parts
# ---------------------------------------------------------------------------


class ExprTerm(FrozenModel):
    """A token of an expression body.

    Exactly one payload field is set, matching ``kind``: ``number`` for
    numeric literals, ``part_id`` for references to other parts and
    ``kernel`` for built-in operators.  Parentheses carry no payload.
    """

    kind: Literal["(", ")", "number", "part", "kernel"]
    number: float | None = Field(default=None, allow_inf_nan=False)
    part_id: EntityId | None = None
    kernel: KernelTerm | None = None

    @model_validator(mode="after")
    def _check_payload(self) -> ExprTerm:
        present = {
            "number": self.number is not None,
            "part": self.part_id is not None,
            "kernel": self.kernel is not None,
        }
        for kind, is_set in present.items():
            if kind == self.kind and not is_set:
                raise ValueError(f"{kind} term is missing its payload")
            if kind != self.kind and is_set:
                raise ValueError(f"{self.kind!r} term must not carry a {kind} payload")
        return self


class ExprSnapshot(FrozenModel):
    """Content-addressed expression shared by every part that computes it."""

    value: list[ExprTerm] = Field(default_factory=list)


class ExprRef(FrozenModel):
    """Expression embedded in a part definition together with its hash."""

    hash: ContentHash
    body: list[ExprTerm] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_hash(self) -> ExprRef:
        expected = content_hash(ExprSnapshot(value=self.body))
        if self.hash != expected:
            raise ValueError(f"expression hash {self.hash[:12]} does not match body ({expected[:12]})")
        return self

    @classmethod
    def of(cls, expr: ExprSnapshot) -> ExprRef:
        """Build a reference whose hash is derived from *expr*."""
        return cls(hash=content_hash(expr), body=list(expr.value))

    def snapshot(self) -> ExprSnapshot:
        return ExprSnapshot(value=list(self.body))


class PartDefSnapshot(FrozenModel):
    """Immutable content of a part (named value) definition."""

    id: EntityId
    name: Label
    description: str = ""
    type_terms: list[TypeTerm] = Field(default_factory=list)
    expr: ExprRef


# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------


class ModuleSnapshot(FrozenModel):
    """Immutable content of a module: nested modules plus its types and parts."""

    name: str = Field(..., min_length=1)
    children: list[ItemRef] = Field(default_factory=list)
    type_defs: list[ItemRef] = Field(default_factory=list)
    part_defs: list[ItemRef] = Field(default_factory=list)
    description: str = ""
    exposing: bool = False


__all__ = [
    "ExprRef",
    "ExprSnapshot",
    "ExprTerm",
    "KernelTerm",
    "KernelType",
    "KernelTypeBody",
    "ModuleSnapshot",
    "PartDefSnapshot",
    "TagTypeBody",
    "TypeBody",
    "TypeDefSnapshot",
    "TypeTag",
    "TypeTerm",
]
