"""Record types shared across the detection pipeline."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(Enum):
    """Severity levels for classified changes, highest first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def highest(cls, severities) -> "Severity":
        """Maximum severity under critical > high > medium > low; LOW when empty."""
        return max(severities, key=lambda s: s.rank, default=cls.LOW)


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class HealthState(Enum):
    """Lifecycle of a tracked API source."""
    IDLE = "idle"
    RUNNING = "running"
    HEALTHY = "healthy"
    ERROR = "error"


@dataclass(frozen=True)
class SchemaVersion:
    """Immutable snapshot of an API source's content."""
    id: int
    source_id: str
    project_id: str
    content_hash: str
    content: Dict[str, Any]
    created_at: str
    commit_ref: Optional[str] = None


@dataclass(frozen=True)
class DetectionResult:
    is_new: bool
    previous: Optional[SchemaVersion] = None
    created: Optional[SchemaVersion] = None


@dataclass(frozen=True)
class FieldDelta:
    """A single structural change inside an operation or a schema definition.

    ``location`` is ``"METHOD /path"`` for operation deltas and the schema
    name for definition deltas. ``param_in`` carries the parameter location
    (query, header, path, cookie, body) for parameter deltas.
    """
    kind: str
    location: str
    field: Optional[str] = None
    old_type: Optional[str] = None
    new_type: Optional[str] = None
    value: Optional[str] = None
    param_in: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class MethodDelta:
    method: str
    changes: List[FieldDelta] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method, "changes": [c.to_dict() for c in self.changes]}


@dataclass(frozen=True)
class PathDelta:
    path: str
    removed_methods: List[str] = field(default_factory=list)
    added_methods: List[str] = field(default_factory=list)
    modified_methods: List[MethodDelta] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "removed_methods": list(self.removed_methods),
            "added_methods": list(self.added_methods),
            "modified_methods": [m.to_dict() for m in self.modified_methods],
        }


@dataclass(frozen=True)
class SchemaComparison:
    """Pure output of the schema differ."""
    removed_paths: List[str] = field(default_factory=list)
    added_paths: List[str] = field(default_factory=list)
    modified_paths: List[PathDelta] = field(default_factory=list)
    schema_changes: List[FieldDelta] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.removed_paths or self.added_paths or self.modified_paths or self.schema_changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "removed_paths": list(self.removed_paths),
            "added_paths": list(self.added_paths),
            "modified_paths": [p.to_dict() for p in self.modified_paths],
            "schema_changes": [c.to_dict() for c in self.schema_changes],
        }


@dataclass(frozen=True)
class ClassifiedChange:
    kind: str
    path: str
    description: str
    severity: Severity
    impact: str
    recommendation: str
    breaking: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "path": self.path,
            "description": self.description,
            "severity": self.severity.value,
            "impact": self.impact,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Classified outcome of one version transition."""
    breaking_changes: List[ClassifiedChange]
    non_breaking_changes: List[ClassifiedChange]
    overall_severity: Severity
    summary: str
    new_version_id: Optional[int] = None
    old_version_id: Optional[int] = None
    unclassified_kinds: List[str] = field(default_factory=list)

    @property
    def has_breaking_changes(self) -> bool:
        return bool(self.breaking_changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "breakingChanges": [c.to_dict() for c in self.breaking_changes],
            "nonBreakingChanges": [c.to_dict() for c in self.non_breaking_changes],
            "severity": self.overall_severity.value,
            "summary": self.summary,
            "oldVersionId": self.old_version_id,
            "newVersionId": self.new_version_id,
            "unclassifiedKinds": list(self.unclassified_kinds),
        }


@dataclass(frozen=True)
class AlertChannelConfig:
    """Read-only channel configuration owned by the alerting collaborator."""
    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True


@dataclass(frozen=True)
class AlertDispatchOutcome:
    channel_type: str
    success: bool
    message: str
    retriable: Optional[bool] = None


@dataclass(frozen=True)
class TestSendResult:
    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None

    # keep pytest from collecting this as a test class
    __test__ = False


@dataclass(frozen=True)
class SourceHealth:
    source_id: str
    state: HealthState
    last_error: Optional[str] = None
    last_error_at: Optional[str] = None


@dataclass(frozen=True)
class AnalyzeRequest:
    """Inbound work item from the ingestion layer."""
    source_id: str
    project_id: str
    raw_content: Any
    commit_ref: Optional[str] = None
    source_path: Optional[str] = None
