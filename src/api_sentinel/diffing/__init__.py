"""Structural comparison of API documents.

Provides document loading (JSON/YAML), local reference resolution and the
schema differ that produces a typed SchemaComparison.
"""

from .document_loader import load_document, looks_like_api_document
from .reference_resolver import ReferenceResolver
from .schema_differ import SchemaDiffer

__all__ = [
    "load_document",
    "looks_like_api_document",
    "ReferenceResolver",
    "SchemaDiffer",
]
