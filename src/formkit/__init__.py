"""formkit kernel utilities."""

from .document_json import DocumentJsonTypeError, canonical_dumps, document_hash, pretty_dumps

__all__ = [
    "DocumentJsonTypeError",
    "canonical_dumps",
    "document_hash",
    "pretty_dumps",
]
