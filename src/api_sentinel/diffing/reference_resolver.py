"""Local ``$ref`` resolution for OpenAPI/Swagger documents."""

import logging
from typing import Any, Dict, Iterator, List, Tuple

from ..utils.error_handling import ValidationError

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """Resolves local JSON-pointer references inside one document.

    Only references into the same document (``#/...``) are supported; the
    differ performs no I/O, so external references are treated as
    unresolvable.
    """

    def __init__(self, document: Dict[str, Any]):
        self.document = document

    def validate_references(self) -> int:
        """Check that every ``$ref`` in the document resolves.

        Returns:
            Number of references checked

        Raises:
            ValidationError: On the first external or dangling reference
        """
        checked = 0
        for location, ref in self._iter_refs(self.document, "#"):
            self.lookup(ref, location)
            checked += 1
        logger.debug(f"Validated {checked} references")
        return checked

    def resolve(self, node: Any) -> Any:
        """Follow a ``$ref`` chain until a concrete node is reached."""
        seen: List[str] = []
        while isinstance(node, dict) and isinstance(node.get("$ref"), str):
            ref = node["$ref"]
            if ref in seen:
                raise ValidationError(f"Circular reference chain: {' -> '.join(seen + [ref])}")
            seen.append(ref)
            node = self.lookup(ref)
        return node

    def lookup(self, ref: str, location: str = "") -> Any:
        """Return the node a single reference points at."""
        where = f" (at {location})" if location else ""
        if not ref.startswith("#"):
            raise ValidationError(f"External reference cannot be resolved: {ref}{where}")

        node: Any = self.document
        pointer = ref[1:]
        if pointer in ("", "/"):
            return node

        for raw_token in pointer.lstrip("/").split("/"):
            token = raw_token.replace("~1", "/").replace("~0", "~")
            if isinstance(node, dict) and token in node:
                node = node[token]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                raise ValidationError(f"Unresolvable reference: {ref}{where}")
        return node

    @staticmethod
    def ref_name(node: Any) -> str:
        """Last segment of a ``$ref``, used as a display type for referenced schemas."""
        if isinstance(node, dict) and isinstance(node.get("$ref"), str):
            return node["$ref"].rsplit("/", 1)[-1]
        return ""

    def _iter_refs(self, node: Any, location: str) -> Iterator[Tuple[str, str]]:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str):
                yield location, ref
            for key, value in node.items():
                yield from self._iter_refs(value, f"{location}/{key}")
        elif isinstance(node, list):
            for index, item in enumerate(node):
                yield from self._iter_refs(item, f"{location}/{index}")
