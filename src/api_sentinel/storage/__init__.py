"""Persistence for versions, analyses, source health and alert history."""

from .sqlite_store import SQLiteStore

__all__ = ["SQLiteStore"]
