"""Deployment gating for CI/CD pipelines."""

import logging
from typing import Any, Dict, Optional, Union

from ..classification.severity_classifier import SeverityClassifier
from ..diffing.document_loader import load_document
from ..diffing.schema_differ import SchemaDiffer
from ..storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)

APPROVED = "approved"
BLOCKED = "blocked"


class DeploymentGate:
    """Approves or blocks a candidate API document against the project's latest version.

    The decision depends only on the stored version and the candidate; the
    health of monitored sources plays no part in it.
    """

    def __init__(self, store: SQLiteStore,
                 differ: Optional[SchemaDiffer] = None,
                 classifier: Optional[SeverityClassifier] = None):
        self.store = store
        self.differ = differ or SchemaDiffer()
        self.classifier = classifier or SeverityClassifier()

    def evaluate(self, project_id: str, new_schema: Union[str, bytes, Dict[str, Any]],
                 environment: Optional[str] = None) -> Dict[str, Any]:
        """Evaluate a candidate document.

        Args:
            project_id: Project whose latest version is the baseline
            new_schema: Candidate document, parsed or as JSON/YAML text
            environment: Target environment, used for logging only

        Returns:
            ``{"status", "analysis", "message"}``; ``analysis`` is None when
            the project has no prior version

        Raises:
            ValidationError: If the candidate cannot be parsed or resolved
                (only checked once a prior version exists)
        """
        target = f" ({environment})" if environment else ""

        latest = self.store.get_latest_project_version(project_id)
        if latest is None:
            logger.info(f"No previous version for project {project_id}{target}, approving")
            return {
                "status": APPROVED,
                "analysis": None,
                "message": "No previous version found, allowing deployment",
            }

        candidate = load_document(new_schema)
        comparison = self.differ.compare(latest.content, candidate)
        analysis = self.classifier.classify(comparison)

        if analysis.has_breaking_changes:
            status = BLOCKED
            message = "Deployment blocked due to breaking changes"
        else:
            status = APPROVED
            message = "Deployment approved"

        logger.info(f"Deployment gate for project {project_id}{target}: {status} ({analysis.summary})")
        return {
            "status": status,
            "analysis": analysis.to_dict(),
            "message": message,
        }


def generate_gate_report(decision: Dict[str, Any], project_id: Optional[str] = None) -> str:
    """Generate a human-readable gate report."""
    status = decision.get("status", "unknown")
    status_emoji = {APPROVED: "✅", BLOCKED: "❌"}.get(status, "❓")

    report_lines = [
        "# 🛡️ Deployment Gate Report",
        "",
        f"**Status:** {status_emoji} {status.upper()}",
    ]
    if project_id:
        report_lines.append(f"**Project:** {project_id}")
    report_lines.extend([f"**Message:** {decision.get('message', '')}", ""])

    analysis = decision.get("analysis")
    if not analysis:
        return "\n".join(report_lines)

    report_lines.extend([
        f"**Summary:** {analysis['summary']}",
        f"**Severity:** {analysis['severity'].upper()}",
        "",
    ])

    if analysis["breakingChanges"]:
        report_lines.extend(["## ❌ Breaking Changes", ""])
        for change in analysis["breakingChanges"]:
            report_lines.append(f"- **[{change['severity'].upper()}]** `{change['path']}`: {change['description']}")
            report_lines.append(f"  - Impact: {change['impact']}")
            report_lines.append(f"  - Recommendation: {change['recommendation']}")
        report_lines.append("")

    if analysis["nonBreakingChanges"]:
        report_lines.extend(["## ✅ Safe Changes", ""])
        for change in analysis["nonBreakingChanges"]:
            report_lines.append(f"- `{change['path']}`: {change['description']}")
        report_lines.append("")

    return "\n".join(report_lines)
