"""Canonical serialisation and content hashing.

Every immutable object in the version store is keyed by the SHA-256 digest
of its canonical JSON form.  The canonical form is byte-identical for
logically equal values:

* mapping keys are sorted,
* separators carry no whitespace,
* sets are emitted as lists ordered by each element's canonical form,
* enums collapse to their values and datetimes to UTC ISO-8601 strings,
* pydantic models are dumped in ``json`` mode first.

NaN and infinity are rejected with ``ValueError``; they have no stable JSON
representation and indicate a programming error upstream.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

HASH_ALGORITHM = "sha256"
HASH_HEX_LENGTH = 64

_HASH_RE = re.compile(r"[0-9a-f]{64}")


def _normalise(value: Any) -> Any:
    """Reduce *value* to plain JSON types with a deterministic shape."""
    if isinstance(value, BaseModel):
        return _normalise(value.model_dump(mode="json"))
    if isinstance(value, Enum):
        return _normalise(value.value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        normalised: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"Mapping keys must be strings, got {type(key).__name__}")
            normalised[key] = _normalise(item)
        return normalised
    if isinstance(value, (set, frozenset)):
        items = [_normalise(item) for item in value]
        return sorted(items, key=_dumps)
    if isinstance(value, (list, tuple)):
        return [_normalise(item) for item in value]
    raise TypeError(f"Cannot canonicalise value of type {type(value).__name__}")


def _dumps(value: Any) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_json(value: Any) -> str:
    """Return the canonical JSON text for *value*."""
    return _dumps(_normalise(value))


def canonical_bytes(value: Any) -> bytes:
    """Return the UTF-8 encoded canonical JSON for *value*."""
    return canonical_json(value).encode("utf-8")


def content_hash(value: Any) -> str:
    """Return the lowercase hex SHA-256 digest of *value*'s canonical form.

    Parameters
    ----------
    value:
        Any pydantic model, mapping, sequence, set or JSON scalar.

    Returns
    -------
    str
        A 64-character lowercase hexadecimal string.
    """
    return hashlib.new(HASH_ALGORITHM, canonical_bytes(value)).hexdigest()


def is_content_hash(text: str) -> bool:
    """Return ``True`` if *text* has the shape of a content hash."""
    return bool(_HASH_RE.fullmatch(text))
