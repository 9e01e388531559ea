"""Error taxonomy for the form model engine.

Every error is locally recoverable: a failed operation leaves the tree as it
was and reports a single issue to whoever asked for the change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


Issue = Dict[str, Any]


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


@dataclass
class FormError(Exception):
    message: str
    code: str = "FORM_ERROR"
    path: str | None = None
    detail: dict | None = field(default=None)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base

    def to_issue(self) -> Issue:
        return _issue(self.code, self.message, self.path, self.detail)


@dataclass
class ParentNotFoundError(FormError):
    code: str = "PARENT_NOT_FOUND"


@dataclass
class NodeNotFoundError(FormError):
    code: str = "NODE_NOT_FOUND"


@dataclass
class InvalidTargetError(FormError):
    code: str = "INVALID_TARGET"


@dataclass
class UnknownControlTypeError(FormError):
    code: str = "UNKNOWN_CONTROL_TYPE"


@dataclass
class PropertyNotFoundError(FormError):
    code: str = "PROPERTY_NOT_FOUND"


@dataclass
class PropertyValueError(FormError):
    code: str = "PROPERTY_VALUE_INVALID"


@dataclass
class SelectionError(FormError):
    code: str = "SELECTION_INVALID"


@dataclass
class EditPendingError(FormError):
    code: str = "EDIT_PENDING_VALIDATION"


@dataclass
class DocumentError(FormError):
    code: str = "DOCUMENT_INVALID"
