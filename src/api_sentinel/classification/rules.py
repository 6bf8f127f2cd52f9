"""The breaking-change rule table.

Every change kind the differ can emit has exactly one entry here. New kinds
must be added to this table rather than special-cased in the classifier.
Templates are formatted with the fields of the FieldDelta (``location``,
``field``, ``param_in``, ``old_type``, ``new_type``, ``value``) plus
``method`` and ``path`` for path-level entries.
"""

from dataclasses import dataclass
from typing import Dict

from ..models import Severity


@dataclass(frozen=True)
class ChangeRule:
    severity: Severity
    breaking: bool
    template: str
    impact: str
    recommendation: str


SAFE_IMPACT = "Existing clients are unaffected"
SAFE_RECOMMENDATION = "No action required; consider documenting the addition"

RULES: Dict[str, ChangeRule] = {
    # Breaking
    "endpoint_removed": ChangeRule(
        Severity.CRITICAL, True,
        "Endpoint {path} was removed",
        "Clients calling this endpoint will receive 404 errors",
        "Deprecate endpoint first, then remove after grace period",
    ),
    "method_removed": ChangeRule(
        Severity.CRITICAL, True,
        "HTTP method {method} was removed from {path}",
        "Clients using this HTTP method will receive 405 Method Not Allowed errors",
        "Add deprecation warning before removing methods",
    ),
    "required_param_added": ChangeRule(
        Severity.CRITICAL, True,
        "Required parameter '{field}' ({param_in}) was added",
        "Existing clients will send invalid requests missing the required parameter",
        "Make parameter optional with sensible defaults, or version the API",
    ),
    "request_body_required": ChangeRule(
        Severity.CRITICAL, True,
        "Request body is now required",
        "Clients not sending request body will receive validation errors",
        "Make request body optional or provide migration guide",
    ),
    "param_became_required": ChangeRule(
        Severity.HIGH, True,
        "Parameter '{field}' ({param_in}) is now required",
        "Clients omitting this previously optional parameter will receive validation errors",
        "Keep the parameter optional and apply a server-side default",
    ),
    "response_field_removed": ChangeRule(
        Severity.HIGH, True,
        "Field '{field}' was removed from {location}",
        "Client code expecting this field may break or behave unexpectedly",
        "Deprecate field first, return null/empty values during transition",
    ),
    "field_type_changed": ChangeRule(
        Severity.HIGH, True,
        "Field '{field}' type changed from {old_type} to {new_type}",
        "Clients may fail to parse responses or send incorrect data types",
        "Use API versioning or introduce new field with different name",
    ),
    "enum_value_removed": ChangeRule(
        Severity.MEDIUM, True,
        "Enum value '{value}' was removed from field '{field}'",
        "Clients sending removed enum values will receive validation errors",
        "Deprecate enum values and handle gracefully in API logic",
    ),
    "param_removed": ChangeRule(
        Severity.MEDIUM, True,
        "Parameter '{field}' ({param_in}) was removed",
        "Clients still sending this parameter may be rejected or silently ignored",
        "Keep accepting the parameter during a deprecation window",
    ),
    "request_body_removed": ChangeRule(
        Severity.MEDIUM, True,
        "Request body was removed",
        "Clients sending a request body may be rejected",
        "Continue accepting and ignoring the body during a transition period",
    ),
    "response_status_removed": ChangeRule(
        Severity.MEDIUM, True,
        "Response {value} was removed",
        "Clients handling this status code may no longer receive expected responses",
        "Document the new status codes and keep error semantics stable",
    ),
    # Safe
    "endpoint_added": ChangeRule(
        Severity.LOW, False, "New endpoint {path} was added", SAFE_IMPACT, SAFE_RECOMMENDATION,
    ),
    "method_added": ChangeRule(
        Severity.LOW, False, "New HTTP method {method} was added to {path}", SAFE_IMPACT, SAFE_RECOMMENDATION,
    ),
    "optional_param_added": ChangeRule(
        Severity.LOW, False, "Optional parameter '{field}' ({param_in}) was added", SAFE_IMPACT, SAFE_RECOMMENDATION,
    ),
    "field_added": ChangeRule(
        Severity.LOW, False, "New field '{field}' was added to {location}", SAFE_IMPACT, SAFE_RECOMMENDATION,
    ),
    "param_became_optional": ChangeRule(
        Severity.LOW, False, "Parameter '{field}' ({param_in}) is now optional", SAFE_IMPACT, SAFE_RECOMMENDATION,
    ),
    "request_body_added": ChangeRule(
        Severity.LOW, False, "Optional request body was added", SAFE_IMPACT, SAFE_RECOMMENDATION,
    ),
    "response_status_added": ChangeRule(
        Severity.LOW, False,
        "Response {value} was added",
        "Clients may receive a status code they do not handle explicitly",
        "Document the new status code",
    ),
}

UNCLASSIFIED_RULE = ChangeRule(
    Severity.LOW, False,
    "Unclassified change '{kind}' at {location}",
    "Unknown impact; change kind is not covered by the rule table",
    "Review this change manually",
)
