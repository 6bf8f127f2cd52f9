"""Canonical content hashing for API document versions."""

import hashlib
import json
from typing import Any, Dict


def normalize_content(content: Any) -> Any:
    """Return a JSON-compatible copy of parsed content.

    YAML documents may carry non-string mapping keys (``200:`` response
    codes) and date scalars; both are converted to strings so that the
    stored content and its hash agree with the JSON form of the document.
    """
    if isinstance(content, dict):
        return {str(key): normalize_content(value) for key, value in content.items()}
    if isinstance(content, (list, tuple)):
        return [normalize_content(item) for item in content]
    if content is None or isinstance(content, (str, int, float, bool)):
        return content
    return str(content)


def canonical_json(content: Any) -> str:
    """Serialize content with sorted keys and compact separators."""
    return json.dumps(
        normalize_content(content),
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )


def content_hash(content: Dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``content``.

    Two documents differing only in key order or whitespace produce the
    same hash.
    """
    return hashlib.sha256(canonical_json(content).encode('utf-8')).hexdigest()
