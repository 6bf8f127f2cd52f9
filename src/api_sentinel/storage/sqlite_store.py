"""SQLite persistence for schema versions, analyses, health and alert history."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from ..models import (
    AlertChannelConfig,
    AlertDispatchOutcome,
    AnalysisResult,
    DetectionResult,
    HealthState,
    SchemaVersion,
    SourceHealth,
)
from ..utils.error_handling import PersistenceError

logger = logging.getLogger(__name__)


class SQLiteStore:
    """Reference implementation of the persistence collaborator.

    Every method opens its own short-lived connection, so a store instance
    can be shared between threads (the async pipeline calls it through
    ``asyncio.to_thread``). Version creation runs in a ``BEGIN IMMEDIATE``
    transaction, which serializes concurrent writers on the database file.
    """

    def __init__(self, db_path: Union[str, Path] = "api_sentinel.db", busy_timeout: float = 10.0):
        """Initialize the store.

        Args:
            db_path: SQLite database file (``:memory:`` is not supported)
            busy_timeout: Seconds to wait for a locked database
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SQLiteStore":
        storage = config.get("storage", {})
        return cls(storage.get("database", "api_sentinel.db"),
                   busy_timeout=float(storage.get("busy_timeout_seconds", 10.0)))

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_database(self):
        """Create tables and indexes if they do not exist."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    health TEXT NOT NULL DEFAULT 'healthy',
                    created_timestamp TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS spec_sources (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    path TEXT,
                    frequency TEXT NOT NULL DEFAULT 'daily',
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    health TEXT NOT NULL DEFAULT 'idle',
                    last_error TEXT,
                    last_error_timestamp TEXT,
                    head_version_id INTEGER,
                    head_updated_timestamp TEXT,
                    created_timestamp TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects (id),
                    FOREIGN KEY (head_version_id) REFERENCES schema_versions (id)
                );

                CREATE TABLE IF NOT EXISTS schema_versions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id TEXT NOT NULL,
                    project_id TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    content TEXT NOT NULL,
                    commit_ref TEXT,
                    created_timestamp TEXT NOT NULL,
                    UNIQUE (source_id, content_hash),
                    FOREIGN KEY (source_id) REFERENCES spec_sources (id)
                );

                CREATE TABLE IF NOT EXISTS change_analyses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    old_version_id INTEGER,
                    new_version_id INTEGER NOT NULL,
                    severity TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    breaking_count INTEGER NOT NULL,
                    result TEXT NOT NULL,
                    alert_sent BOOLEAN NOT NULL DEFAULT FALSE,
                    created_timestamp TEXT NOT NULL,
                    FOREIGN KEY (old_version_id) REFERENCES schema_versions (id),
                    FOREIGN KEY (new_version_id) REFERENCES schema_versions (id)
                );

                CREATE TABLE IF NOT EXISTS alert_configs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    parameters TEXT NOT NULL,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_timestamp TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects (id)
                );

                CREATE TABLE IF NOT EXISTS alert_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    analysis_id INTEGER,
                    channel_type TEXT NOT NULL,
                    success BOOLEAN NOT NULL,
                    message TEXT,
                    retriable BOOLEAN,
                    created_timestamp TEXT NOT NULL,
                    FOREIGN KEY (analysis_id) REFERENCES change_analyses (id)
                );

                CREATE INDEX IF NOT EXISTS idx_sources_project ON spec_sources (project_id);
                CREATE INDEX IF NOT EXISTS idx_versions_source ON schema_versions (source_id);
                CREATE INDEX IF NOT EXISTS idx_analyses_project ON change_analyses (project_id);
                CREATE INDEX IF NOT EXISTS idx_alert_history_project ON alert_history (project_id);
            """)

    # Projects and sources

    def register_project(self, project_id: str, name: Optional[str] = None):
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO projects (id, name, created_timestamp) VALUES (?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET name = COALESCE(excluded.name, projects.name)
            """, (project_id, name, timestamp))
        logger.debug(f"Registered project {project_id}")

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            return dict(row) if row else None

    def register_source(self, source_id: str, project_id: str, path: Optional[str] = None,
                        frequency: str = "daily", is_active: bool = True):
        """Register (or update) a monitored API source.

        Args:
            source_id: Unique identifier of the source
            project_id: Owning project, created if unknown
            path: File path of the document inside its repository
            frequency: Monitoring frequency (hourly, daily, weekly or seconds)
            is_active: Whether the source is monitored
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            self._ensure_source(conn, source_id, project_id, timestamp)
            conn.execute("""
                UPDATE spec_sources
                SET project_id = ?, path = COALESCE(?, path), frequency = ?, is_active = ?
                WHERE id = ?
            """, (project_id, path, frequency, is_active, source_id))
        logger.info(f"Registered source {source_id} for project {project_id}")

    @staticmethod
    def _ensure_source(conn: sqlite3.Connection, source_id: str, project_id: str, timestamp: str):
        conn.execute("""
            INSERT OR IGNORE INTO projects (id, created_timestamp) VALUES (?, ?)
        """, (project_id, timestamp))
        conn.execute("""
            INSERT OR IGNORE INTO spec_sources (id, project_id, created_timestamp) VALUES (?, ?, ?)
        """, (source_id, project_id, timestamp))

    def get_project_sources(self, project_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
        query = "SELECT * FROM spec_sources WHERE project_id = ?"
        if active_only:
            query += " AND is_active = TRUE"
        with self._connect() as conn:
            cursor = conn.execute(query + " ORDER BY id", (project_id,))
            return [dict(row) for row in cursor.fetchall()]

    def get_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM spec_sources WHERE id = ?", (source_id,)).fetchone()
            return dict(row) if row else None

    # Schema versions

    def get_latest_schema_version(self, source_id: str) -> Optional[SchemaVersion]:
        """Return the head version of a source, or None before its first version."""
        with self._connect() as conn:
            return self._head_version(conn, source_id)

    @staticmethod
    def _head_version(conn: sqlite3.Connection, source_id: str) -> Optional[SchemaVersion]:
        row = conn.execute("""
            SELECT v.* FROM spec_sources s
            JOIN schema_versions v ON v.id = s.head_version_id
            WHERE s.id = ?
        """, (source_id,)).fetchone()
        return _row_to_version(row) if row else None

    def get_schema_version(self, version_id: int) -> Optional[SchemaVersion]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM schema_versions WHERE id = ?", (version_id,)).fetchone()
            return _row_to_version(row) if row else None

    def get_latest_project_version(self, project_id: str) -> Optional[SchemaVersion]:
        """Return the most recently updated head version across a project's sources."""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT v.* FROM spec_sources s
                JOIN schema_versions v ON v.id = s.head_version_id
                WHERE s.project_id = ?
                ORDER BY s.head_updated_timestamp DESC, v.id DESC
                LIMIT 1
            """, (project_id,)).fetchone()
            return _row_to_version(row) if row else None

    def create_schema_version(self, source_id: str, project_id: str, content: Dict[str, Any],
                              content_hash: str, commit_ref: Optional[str] = None) -> DetectionResult:
        """Atomically make ``content`` the head version of a source.

        The head is re-read inside the transaction. If it already carries
        ``content_hash`` nothing is written and ``is_new`` is False. If an
        older version with the same hash exists (content reverted), that
        row becomes the head again; otherwise a new version is inserted.

        Args:
            source_id: Source identifier
            project_id: Owning project identifier
            content: Parsed, JSON-compatible document
            content_hash: Canonical hash of ``content``
            commit_ref: Optional commit reference

        Returns:
            DetectionResult with the previous head and the new head
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._transaction() as conn:
            self._ensure_source(conn, source_id, project_id, timestamp)
            previous = self._head_version(conn, source_id)
            if previous is not None and previous.content_hash == content_hash:
                return DetectionResult(is_new=False, previous=previous)

            row = conn.execute("""
                SELECT * FROM schema_versions WHERE source_id = ? AND content_hash = ?
            """, (source_id, content_hash)).fetchone()
            if row is None:
                cursor = conn.execute("""
                    INSERT INTO schema_versions
                    (source_id, project_id, content_hash, content, commit_ref, created_timestamp)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (source_id, project_id, content_hash, json.dumps(content), commit_ref, timestamp))
                row = conn.execute("SELECT * FROM schema_versions WHERE id = ?",
                                   (cursor.lastrowid,)).fetchone()
                logger.info(f"Stored schema version {cursor.lastrowid} for source {source_id}")
            else:
                logger.info(f"Content of source {source_id} reverted to version {row['id']}")

            conn.execute("""
                UPDATE spec_sources SET head_version_id = ?, head_updated_timestamp = ? WHERE id = ?
            """, (row["id"], timestamp, source_id))

        return DetectionResult(is_new=True, previous=previous, created=_row_to_version(row))

    # Analyses

    def create_change_analysis(self, project_id: str, source_id: str, result: AnalysisResult) -> int:
        """Persist a classified analysis and return its ID."""
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            cursor = conn.execute("""
                INSERT INTO change_analyses
                (project_id, source_id, old_version_id, new_version_id, severity, summary,
                 breaking_count, result, created_timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                project_id,
                source_id,
                result.old_version_id,
                result.new_version_id,
                result.overall_severity.value,
                result.summary,
                len(result.breaking_changes),
                json.dumps(result.to_dict()),
                timestamp
            ))
            analysis_id = cursor.lastrowid

        logger.info(f"Stored change analysis {analysis_id} for source {source_id}")
        return analysis_id

    def get_change_analyses(self, project_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Return stored analyses for a project, newest first."""
        with self._connect() as conn:
            cursor = conn.execute("""
                SELECT * FROM change_analyses WHERE project_id = ?
                ORDER BY id DESC LIMIT ?
            """, (project_id, limit))
            analyses = []
            for row in cursor.fetchall():
                record = dict(row)
                record["result"] = json.loads(record["result"])
                record["alert_sent"] = bool(record["alert_sent"])
                analyses.append(record)
            return analyses

    # Health

    def update_source_error(self, source_id: str, message: str,
                            project_id: Optional[str] = None) -> str:
        """Mark a source as failing and return the error timestamp."""
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            if project_id is not None:
                self._ensure_source(conn, source_id, project_id, timestamp)
            conn.execute("""
                UPDATE spec_sources
                SET health = ?, last_error = ?, last_error_timestamp = ?
                WHERE id = ?
            """, (HealthState.ERROR.value, message, timestamp, source_id))
        logger.debug(f"Recorded error for source {source_id}")
        return timestamp

    def clear_source_error(self, source_id: str):
        with self._connect() as conn:
            conn.execute("""
                UPDATE spec_sources
                SET health = ?, last_error = NULL, last_error_timestamp = NULL
                WHERE id = ?
            """, (HealthState.HEALTHY.value, source_id))

    def get_source_health(self, source_id: str) -> Optional[SourceHealth]:
        source = self.get_source(source_id)
        if source is None:
            return None
        return SourceHealth(
            source_id=source_id,
            state=HealthState(source["health"]),
            last_error=source["last_error"],
            last_error_at=source["last_error_timestamp"],
        )

    def update_project_health(self, project_id: str, health: Union[HealthState, str]):
        value = health.value if isinstance(health, HealthState) else str(health)
        with self._connect() as conn:
            conn.execute("UPDATE projects SET health = ? WHERE id = ?", (value, project_id))

    def get_project_health(self, project_id: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT health FROM projects WHERE id = ?", (project_id,)).fetchone()
            return row["health"] if row else None

    # Alerting

    def add_alert_config(self, project_id: str, channel_type: str,
                         parameters: Dict[str, Any], is_active: bool = True) -> int:
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute("INSERT OR IGNORE INTO projects (id, created_timestamp) VALUES (?, ?)",
                         (project_id, timestamp))
            cursor = conn.execute("""
                INSERT INTO alert_configs (project_id, type, parameters, is_active, created_timestamp)
                VALUES (?, ?, ?, ?, ?)
            """, (project_id, channel_type, json.dumps(parameters), is_active, timestamp))
            config_id = cursor.lastrowid

        logger.info(f"Added {channel_type} alert config {config_id} for project {project_id}")
        return config_id

    def get_alert_configs(self, project_id: str, active_only: bool = True) -> List[AlertChannelConfig]:
        query = "SELECT * FROM alert_configs WHERE project_id = ?"
        if active_only:
            query += " AND is_active = TRUE"
        with self._connect() as conn:
            cursor = conn.execute(query + " ORDER BY id", (project_id,))
            return [
                AlertChannelConfig(
                    type=row["type"],
                    parameters=json.loads(row["parameters"]),
                    is_active=bool(row["is_active"]),
                )
                for row in cursor.fetchall()
            ]

    def record_alert_outcomes(self, project_id: str, outcomes: Sequence[AlertDispatchOutcome],
                              analysis_id: Optional[int] = None):
        """Append dispatch outcomes to the alert history.

        The analysis is flagged as alerted when at least one channel succeeded.
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.executemany("""
                INSERT INTO alert_history
                (project_id, analysis_id, channel_type, success, message, retriable, created_timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                (project_id, analysis_id, o.channel_type, o.success, o.message, o.retriable, timestamp)
                for o in outcomes
            ])
            if analysis_id is not None and any(o.success for o in outcomes):
                conn.execute("UPDATE change_analyses SET alert_sent = TRUE WHERE id = ?", (analysis_id,))

    def get_alert_history(self, project_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            cursor = conn.execute("""
                SELECT * FROM alert_history WHERE project_id = ?
                ORDER BY id DESC LIMIT ?
            """, (project_id, limit))
            return [dict(row) for row in cursor.fetchall()]


def _row_to_version(row: sqlite3.Row) -> SchemaVersion:
    return SchemaVersion(
        id=row["id"],
        source_id=row["source_id"],
        project_id=row["project_id"],
        content_hash=row["content_hash"],
        content=json.loads(row["content"]),
        created_at=row["created_timestamp"],
        commit_ref=row["commit_ref"],
    )
