"""Parsing of raw API documents (JSON or YAML) into mappings."""

import json
import logging
from typing import Any, Dict, Optional, Union

import yaml

from ..utils.error_handling import ValidationError

logger = logging.getLogger(__name__)


def load_document(raw: Union[str, bytes, Dict[str, Any], None],
                  source_path: Optional[str] = None) -> Dict[str, Any]:
    """Parse a raw API document.

    Args:
        raw: Parsed mapping, or JSON/YAML text
        source_path: Optional file path, used to prefer the JSON parser for ``.json``

    Returns:
        The document as a dictionary (empty for empty input)

    Raises:
        ValidationError: If the content cannot be parsed or is not a mapping
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ValidationError(f"Document is not valid UTF-8: {e}") from e
    if not isinstance(raw, str):
        raise ValidationError(f"Unsupported document type: {type(raw).__name__}")

    text = raw.strip()
    if not text:
        return {}

    prefers_json = (source_path or "").lower().endswith(".json") or text.startswith("{")
    if prefers_json:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            if (source_path or "").lower().endswith(".json"):
                raise ValidationError(f"JSON parsing failed: {e.msg} at line {e.lineno}, column {e.colno}") from e
            logger.debug(f"JSON parsing failed, retrying as YAML: {e}")
            parsed = _load_yaml(text)
    else:
        parsed = _load_yaml(text)

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValidationError(f"Parsed document is not a mapping (got {type(parsed).__name__})")
    return parsed


def _load_yaml(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        location = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        raise ValidationError(f"YAML parsing failed: {getattr(e, 'problem', None) or e}{location}") from e


def looks_like_api_document(document: Any) -> bool:
    """Return True if the mapping carries an OpenAPI/Swagger marker, info and paths."""
    if not isinstance(document, dict):
        return False
    has_marker = "openapi" in document or "swagger" in document
    return has_marker and "info" in document and "paths" in document
