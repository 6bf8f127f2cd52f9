"""Test severity classification and summary generation."""

import random

import pytest

from api_sentinel.classification import RULES, SeverityClassifier
from api_sentinel.models import FieldDelta, MethodDelta, PathDelta, SchemaComparison, Severity

DIFFER_KINDS = {
    "endpoint_removed", "endpoint_added", "method_removed", "method_added",
    "required_param_added", "optional_param_added", "param_removed",
    "param_became_required", "param_became_optional",
    "request_body_required", "request_body_added", "request_body_removed",
    "response_status_removed", "response_status_added",
    "response_field_removed", "field_added", "field_type_changed", "enum_value_removed",
}


def _comparison(*deltas, removed_paths=(), added_paths=()):
    return SchemaComparison(
        removed_paths=list(removed_paths),
        added_paths=list(added_paths),
        modified_paths=[PathDelta("/items", modified_methods=[MethodDelta("get", list(deltas))])] if deltas else [],
    )


def test_every_differ_kind_has_a_rule():
    assert DIFFER_KINDS <= set(RULES)


def test_endpoint_removed_is_critical():
    result = SeverityClassifier().classify(SchemaComparison(removed_paths=["/users"]))

    assert [c.kind for c in result.breaking_changes] == ["endpoint_removed"]
    change = result.breaking_changes[0]
    assert change.severity is Severity.CRITICAL
    assert change.path == "/users"
    assert change.description == "Endpoint /users was removed"
    assert result.overall_severity is Severity.CRITICAL
    assert result.summary == "1 breaking change (1 critical) and 0 safe changes detected"


def test_optional_param_is_safe():
    delta = FieldDelta("optional_param_added", "GET /items", field="limit", param_in="query")

    result = SeverityClassifier().classify(_comparison(delta))

    assert result.breaking_changes == []
    assert len(result.non_breaking_changes) == 1
    change = result.non_breaking_changes[0]
    assert change.kind == "optional_param_added"
    assert change.breaking is False
    assert change.description == "Optional parameter 'limit' (query) was added"
    assert result.overall_severity is Severity.LOW
    assert result.summary == "1 safe change detected"


def test_required_body_field_is_critical():
    delta = FieldDelta("required_param_added", "POST /signup", field="email", param_in="body")

    result = SeverityClassifier().classify(_comparison(delta))

    assert result.breaking_changes[0].severity is Severity.CRITICAL
    assert result.breaking_changes[0].description == "Required parameter 'email' (body) was added"
    assert result.breaking_changes[0].path == "POST /signup"


def test_method_changes_are_described():
    comparison = SchemaComparison(modified_paths=[
        PathDelta("/pets", removed_methods=["delete"], added_methods=["patch"]),
    ])

    result = SeverityClassifier().classify(comparison)

    assert [c.description for c in result.breaking_changes] == ["HTTP method DELETE was removed from /pets"]
    assert [c.description for c in result.non_breaking_changes] == ["New HTTP method PATCH was added to /pets"]
    assert result.breaking_changes[0].path == "DELETE /pets"


def test_schema_change_descriptions():
    comparison = SchemaComparison(schema_changes=[
        FieldDelta("field_type_changed", "Pet", field="id", old_type="integer", new_type="string"),
        FieldDelta("enum_value_removed", "Pet", field="status", value="sold"),
        FieldDelta("response_field_removed", "Pet", field="name"),
    ])

    result = SeverityClassifier().classify(comparison)

    assert [c.description for c in result.breaking_changes] == [
        "Field 'id' type changed from integer to string",
        "Enum value 'sold' was removed from field 'status'",
        "Field 'name' was removed from Pet",
    ]
    assert [c.severity for c in result.breaking_changes] == [Severity.HIGH, Severity.MEDIUM, Severity.HIGH]
    assert result.overall_severity is Severity.HIGH
    assert result.summary == "3 breaking changes (2 high, 1 medium) and 0 safe changes detected"


def test_no_changes_summary():
    result = SeverityClassifier().classify(SchemaComparison())

    assert result.summary == "No changes detected"
    assert result.overall_severity is Severity.LOW
    assert not result.has_breaking_changes


@pytest.mark.parametrize("seed", range(10))
def test_overall_severity_is_maximum_of_breaking_changes(seed):
    """Overall severity equals the highest breaking severity regardless of entry order."""
    rng = random.Random(seed)
    kinds = [kind for kind in RULES if rng.random() < 0.5]
    deltas = [FieldDelta(kind, "GET /items", field=f"f{i}") for i, kind in enumerate(kinds)]
    rng.shuffle(deltas)

    classifier = SeverityClassifier()
    result = classifier.classify(_comparison(*deltas))
    reversed_result = classifier.classify(_comparison(*reversed(deltas)))

    breaking = [RULES[kind].severity for kind in kinds if RULES[kind].breaking]
    expected = max(breaking, key=lambda s: s.rank) if breaking else Severity.LOW
    assert result.overall_severity is expected
    assert reversed_result.overall_severity is expected
    assert reversed_result.summary == result.summary


def test_unknown_kind_is_safe_and_reported(caplog):
    delta = FieldDelta("webhook_removed", "GET /items", field="onEvent")

    with caplog.at_level("WARNING"):
        result = SeverityClassifier().classify(_comparison(delta, delta))

    assert result.breaking_changes == []
    assert [c.kind for c in result.non_breaking_changes] == ["webhook_removed", "webhook_removed"]
    assert result.non_breaking_changes[0].severity is Severity.LOW
    assert result.unclassified_kinds == ["webhook_removed"]
    assert "webhook_removed" in caplog.text


def test_analysis_serialises_with_camel_case_keys():
    result = SeverityClassifier().classify(SchemaComparison(removed_paths=["/users"], added_paths=["/people"]))

    payload = result.to_dict()

    assert payload["severity"] == "critical"
    assert payload["breakingChanges"][0] == {
        "type": "endpoint_removed",
        "path": "/users",
        "description": "Endpoint /users was removed",
        "severity": "critical",
        "impact": RULES["endpoint_removed"].impact,
        "recommendation": RULES["endpoint_removed"].recommendation,
    }
    assert payload["nonBreakingChanges"][0]["type"] == "endpoint_added"
