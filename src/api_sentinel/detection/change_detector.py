"""Content-hash based detection of new schema versions."""

import asyncio
import logging
from typing import Any, Dict, Optional

from ..models import DetectionResult
from ..storage.sqlite_store import SQLiteStore
from .content_hasher import content_hash, normalize_content

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Decides whether parsed content is a new version of an API source.

    The store call runs in a worker thread so the event loop is never
    blocked on SQLite.
    """

    def __init__(self, store: SQLiteStore):
        self.store = store

    async def detect(self, source_id: str, project_id: str, content: Dict[str, Any],
                     commit_ref: Optional[str] = None) -> DetectionResult:
        """Record ``content`` for a source if it differs from the head version.

        Args:
            source_id: Source identifier
            project_id: Owning project identifier
            content: Parsed document
            commit_ref: Optional commit reference for the new version

        Returns:
            DetectionResult; ``is_new`` is False when the head already has this content
        """
        normalized = normalize_content(content)
        digest = content_hash(normalized)

        head = await asyncio.to_thread(self.store.get_latest_schema_version, source_id)
        if head is not None and head.content_hash == digest:
            logger.debug(f"No change for source {source_id} (hash {digest[:8]}...)")
            return DetectionResult(is_new=False, previous=head)

        result = await asyncio.to_thread(
            self.store.create_schema_version,
            source_id, project_id, normalized, digest, commit_ref,
        )
        if result.is_new:
            previous_id = result.previous.id if result.previous else None
            logger.info(
                f"New version {result.created.id} for source {source_id} "
                f"(previous: {previous_id}, hash {digest[:8]}...)"
            )
        else:
            logger.debug(f"Source {source_id} was updated concurrently with identical content")
        return result
