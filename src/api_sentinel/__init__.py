"""API Sentinel: breaking-change detection and alerting for API documents.

The pipeline tracks versions of OpenAPI/Swagger documents by content hash,
compares successive versions structurally, classifies every change by
severity and notifies the configured channels when a change is likely to
break existing clients.
"""

__version__ = "1.0.0"

from .models import (
    AlertChannelConfig,
    AlertDispatchOutcome,
    AnalysisResult,
    AnalyzeRequest,
    ClassifiedChange,
    DetectionResult,
    FieldDelta,
    HealthState,
    MethodDelta,
    PathDelta,
    SchemaComparison,
    SchemaVersion,
    Severity,
    SourceHealth,
    TestSendResult,
)

__all__ = [
    "AlertChannelConfig",
    "AlertDispatchOutcome",
    "AnalysisResult",
    "AnalyzeRequest",
    "ClassifiedChange",
    "DetectionResult",
    "FieldDelta",
    "HealthState",
    "MethodDelta",
    "PathDelta",
    "SchemaComparison",
    "SchemaVersion",
    "Severity",
    "SourceHealth",
    "TestSendResult",
]
