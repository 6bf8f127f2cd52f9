"""Severity classification of schema comparisons."""

import logging
from collections import Counter
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..models import AnalysisResult, ClassifiedChange, FieldDelta, SchemaComparison, Severity
from ..utils.error_handling import ClassificationGap
from .rules import RULES, UNCLASSIFIED_RULE, ChangeRule

logger = logging.getLogger(__name__)


class _TemplateFields(dict):
    def __missing__(self, key):
        return "?"


class SeverityClassifier:
    """Maps diff entries to breaking/non-breaking changes with severity.

    Classification is a pure lookup in the rule table; the order in which
    entries are classified does not influence the aggregate result.
    """

    def __init__(self, rules: Optional[Dict[str, ChangeRule]] = None):
        self.rules = dict(RULES if rules is None else rules)

    def classify(self, comparison: SchemaComparison) -> AnalysisResult:
        """Classify every entry of a comparison.

        Args:
            comparison: Output of SchemaDiffer.compare()

        Returns:
            AnalysisResult without version identifiers
        """
        breaking: List[ClassifiedChange] = []
        non_breaking: List[ClassifiedChange] = []
        unclassified: List[str] = []

        for kind, location, fields in self._iter_entries(comparison):
            change, known = self.classify_entry(kind, location, fields)
            if not known and kind not in unclassified:
                unclassified.append(kind)
            (breaking if change.breaking else non_breaking).append(change)

        overall = self.overall_severity(breaking)
        summary = self.generate_summary(breaking, non_breaking)
        logger.info(f"Classification completed: {summary} (overall severity: {overall.value})")

        return AnalysisResult(
            breaking_changes=breaking,
            non_breaking_changes=non_breaking,
            overall_severity=overall,
            summary=summary,
            unclassified_kinds=sorted(unclassified),
        )

    def classify_entry(self, kind: str, location: str,
                       fields: Dict[str, Any]) -> Tuple[ClassifiedChange, bool]:
        """Classify a single entry.

        Returns:
            The classified change and whether a rule matched the kind
        """
        rule = self.rules.get(kind)
        known = rule is not None
        if not known:
            gap = ClassificationGap(kind)
            logger.warning(f"Unclassified change at {location}: {gap}; defaulting to low/safe")
            rule = UNCLASSIFIED_RULE

        template_fields = _TemplateFields(
            {k: v for k, v in fields.items() if v is not None},
            kind=kind,
            location=location,
        )
        change = ClassifiedChange(
            kind=kind,
            path=location,
            description=rule.template.format_map(template_fields),
            severity=rule.severity,
            impact=rule.impact,
            recommendation=rule.recommendation,
            breaking=rule.breaking,
        )
        return change, known

    @staticmethod
    def overall_severity(breaking_changes: List[ClassifiedChange]) -> Severity:
        """Highest severity among breaking changes, LOW when there are none."""
        return Severity.highest(change.severity for change in breaking_changes)

    @staticmethod
    def generate_summary(breaking_changes: List[ClassifiedChange],
                         non_breaking_changes: List[ClassifiedChange]) -> str:
        breaking_count = len(breaking_changes)
        safe_count = len(non_breaking_changes)
        safe_text = f"{safe_count} safe change{'' if safe_count == 1 else 's'}"

        if breaking_count == 0 and safe_count == 0:
            return "No changes detected"
        if breaking_count == 0:
            return f"{safe_text} detected"

        counts = Counter(change.severity for change in breaking_changes)
        buckets = ", ".join(
            f"{counts[severity]} {severity.value}"
            for severity in sorted(counts, key=lambda s: s.rank, reverse=True)
        )
        return (
            f"{breaking_count} breaking change{'' if breaking_count == 1 else 's'} "
            f"({buckets}) and {safe_text} detected"
        )

    def _iter_entries(self, comparison: SchemaComparison) -> Iterator[Tuple[str, str, Dict[str, Any]]]:
        for path in comparison.removed_paths:
            yield "endpoint_removed", path, {"path": path}

        for path in comparison.added_paths:
            yield "endpoint_added", path, {"path": path}

        for path_delta in comparison.modified_paths:
            path = path_delta.path
            for method in path_delta.removed_methods:
                yield "method_removed", f"{method.upper()} {path}", {"path": path, "method": method.upper()}
            for method in path_delta.added_methods:
                yield "method_added", f"{method.upper()} {path}", {"path": path, "method": method.upper()}
            for method_delta in path_delta.modified_methods:
                for delta in method_delta.changes:
                    yield self._delta_entry(delta, path=path, method=method_delta.method.upper())

        for delta in comparison.schema_changes:
            yield self._delta_entry(delta)

    @staticmethod
    def _delta_entry(delta: FieldDelta, **extra: Any) -> Tuple[str, str, Dict[str, Any]]:
        fields = delta.to_dict()
        fields.update(extra)
        return delta.kind, delta.location, fields
