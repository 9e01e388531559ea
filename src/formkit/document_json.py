"""Deterministic JSON helpers for form documents."""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any


class DocumentJsonTypeError(TypeError):
    """Raised when a form document holds a value JSON cannot carry."""


def _validate(obj: Any, path: str = "$") -> None:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise DocumentJsonTypeError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            _validate(value, f"{path}.{key}")
        return
    if isinstance(obj, (list, tuple)):
        for idx, item in enumerate(obj):
            _validate(item, f"{path}[{idx}]")
        return
    if obj is None:
        return
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return
    if isinstance(obj, (str, int, bool)):
        return
    raise DocumentJsonTypeError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def canonical_dumps(obj: Any) -> str:
    """Serialize an object to canonical JSON.

    Rules:
    - Sort dict keys recursively.
    - Preserve list order (sibling order is rendering order).
    - UTF-8 with non-ASCII preserved.
    - No extra whitespace.
    """
    _validate(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def pretty_dumps(obj: Any) -> str:
    """Serialize a document the way the designer writes form files.

    Keys keep insertion order so property order survives a save.
    """
    _validate(obj)
    return json.dumps(obj, indent=4, ensure_ascii=False, allow_nan=False)


def document_hash(obj: Any) -> str:
    """Return the canonical SHA-256 hash of a document or form tree."""
    data = canonical_dumps(obj).encode("utf-8")
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"
