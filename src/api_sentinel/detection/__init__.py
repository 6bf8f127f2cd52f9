"""Version tracking of API sources by canonical content hash."""

from .change_detector import ChangeDetector
from .content_hasher import canonical_json, content_hash, normalize_content

__all__ = [
    "ChangeDetector",
    "canonical_json",
    "content_hash",
    "normalize_content",
]
