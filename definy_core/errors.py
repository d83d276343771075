"""Exception taxonomy for the version store.

Storage-level failures are translated into these domain errors at the
store boundary so callers never have to inspect SQLAlchemy exceptions.
"""

from __future__ import annotations


class VersionStoreError(Exception):
    """Base class for all version store errors."""


class NotFoundError(VersionStoreError):
    """Raised when a requested hash or id is absent from the store.

    Attributes
    ----------
    kind:
        The entity kind that was looked up, e.g. ``"commit"`` or ``"branch"``.
    key:
        The hash or id that could not be resolved.
    """

    def __init__(self, kind: str, key: str) -> None:
        self.kind = str(kind)
        self.key = key
        super().__init__(f"No {self.kind} found for key {key!r}")


class DanglingReferenceError(VersionStoreError):
    """Raised when a write references a hash that does not exist in the store."""

    def __init__(self, kind: str, hash: str) -> None:  # noqa: A002
        self.kind = str(kind)
        self.hash = hash
        super().__init__(f"Reference to missing {self.kind} {hash!r}")


class ConcurrentModificationError(VersionStoreError):
    """Raised when a branch head moved between read and compare-and-swap.

    Callers should re-read the branch and retry with the fresh head as the
    new parent.
    """

    def __init__(self, branch_id: str, expected: str, actual: str | None = None) -> None:
        self.branch_id = branch_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Branch {branch_id!r} head changed: expected {expected[:12]}, found {(actual or '?')[:12]}"
        )


class StoreUnavailableError(VersionStoreError):
    """Transient I/O failure talking to the backing store.  Safe to retry."""

    def __init__(self, operation: str, reason: str = "") -> None:
        self.operation = operation
        self.reason = reason
        message = f"Store unavailable during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
