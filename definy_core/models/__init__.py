"""Domain models for the Definy version store."""

from definy_core.models.branch import Branch, Project, ReleaseChannel
from definy_core.models.commit import (
    AnyCommit,
    Commit,
    CommitParams,
    CommitTree,
    DraftCommit,
    DraftParams,
    ProjectMeta,
)
from definy_core.models.common import ItemRef, new_id, utcnow
from definy_core.models.snapshot import (
    ExprRef,
    ExprSnapshot,
    ExprTerm,
    KernelTerm,
    KernelType,
    KernelTypeBody,
    ModuleSnapshot,
    PartDefSnapshot,
    TagTypeBody,
    TypeDefSnapshot,
    TypeTag,
    TypeTerm,
)

__all__ = [
    "AnyCommit",
    "Branch",
    "Commit",
    "CommitParams",
    "CommitTree",
    "DraftCommit",
    "DraftParams",
    "ExprRef",
    "ExprSnapshot",
    "ExprTerm",
    "ItemRef",
    "KernelTerm",
    "KernelType",
    "KernelTypeBody",
    "ModuleSnapshot",
    "PartDefSnapshot",
    "Project",
    "ProjectMeta",
    "ReleaseChannel",
    "TagTypeBody",
    "TypeDefSnapshot",
    "TypeTag",
    "TypeTerm",
    "new_id",
    "utcnow",
]
