"""Test the HTTP interface and the CI deployment gate."""

import copy

import httpx
import pytest
from fastapi.testclient import TestClient

from api_sentinel.alerting import AlertDispatcher, ChannelSettings
from api_sentinel.api.server import create_app
from api_sentinel.ci.validation_gate import DeploymentGate, generate_gate_report
from api_sentinel.detection import content_hash
from api_sentinel.utils.error_handling import ValidationError


def _seed(store, content, source_id="spec-1", project_id="project-1"):
    store.create_schema_version(source_id, project_id, content, content_hash(content))


@pytest.fixture
def webhook_requests():
    return []


@pytest.fixture
def client(store, fast_retry, webhook_requests):
    def handler(request):
        webhook_requests.append(request)
        return httpx.Response(200)

    dispatcher = AlertDispatcher(
        settings=ChannelSettings(), retry_policy=fast_retry,
        store=store, transport=httpx.MockTransport(handler),
    )
    with TestClient(create_app(config={}, store=store, dispatcher=dispatcher)) as test_client:
        yield test_client


@pytest.mark.parametrize("body", [
    {},
    {"projectId": "project-1"},
    {"newSchema": {"paths": {}}},
    {"projectId": "", "newSchema": {"paths": {}}},
    {"projectId": "project-1", "newSchema": ""},
])
def test_validate_requires_project_and_schema(client, body):
    response = client.post("/api/ci/validate", json=body)

    assert response.status_code == 400
    assert response.json() == {"message": "Project ID and new schema are required"}


def test_validate_without_history_is_approved(client, petstore):
    response = client.post("/api/ci/validate", json={"projectId": "project-1", "newSchema": petstore})

    assert response.status_code == 200
    assert response.json() == {
        "status": "approved",
        "analysis": None,
        "message": "No previous version found, allowing deployment",
    }


@pytest.mark.parametrize("new_schema", [{}, "a: [1", "- not\n- a mapping"])
def test_validate_without_history_approves_any_candidate(client, new_schema):
    """Without a prior version the candidate is approved before it is parsed."""
    response = client.post("/api/ci/validate", json={"projectId": "project-1", "newSchema": new_schema})

    assert response.status_code == 200
    assert response.json() == {
        "status": "approved",
        "analysis": None,
        "message": "No previous version found, allowing deployment",
    }


def test_validate_accepts_empty_object_against_history(client, store, petstore):
    _seed(store, petstore)

    response = client.post("/api/ci/validate", json={"projectId": "project-1", "newSchema": {}})

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "blocked"
    assert sorted(c["path"] for c in body["analysis"]["breakingChanges"]) == ["/pets", "/pets/{petId}"]


def test_validate_blocks_breaking_changes(client, store, petstore):
    _seed(store, petstore)
    candidate = copy.deepcopy(petstore)
    del candidate["paths"]["/pets/{petId}"]

    response = client.post("/api/ci/validate", json={
        "projectId": "project-1", "newSchema": candidate, "environment": "production",
    })

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "blocked"
    assert body["message"] == "Deployment blocked due to breaking changes"
    assert body["analysis"]["severity"] == "critical"
    assert [c["type"] for c in body["analysis"]["breakingChanges"]] == ["endpoint_removed"]


def test_validate_approves_safe_changes(client, store, petstore):
    _seed(store, petstore)
    candidate = copy.deepcopy(petstore)
    candidate["paths"]["/pets"]["get"]["parameters"].append(
        {"name": "limit", "in": "query", "schema": {"type": "integer"}}
    )

    response = client.post("/api/ci/validate", json={"projectId": "project-1", "newSchema": candidate})

    body = response.json()
    assert body["status"] == "approved"
    assert body["message"] == "Deployment approved"
    assert body["analysis"]["breakingChanges"] == []
    assert body["analysis"]["nonBreakingChanges"][0]["type"] == "optional_param_added"


def test_validate_accepts_yaml_text(client, store, petstore):
    _seed(store, petstore)
    yaml_candidate = "openapi: 3.0.3\ninfo: {title: Petstore, version: 2.0.0}\npaths: {}\n"

    response = client.post("/api/ci/validate", json={"projectId": "project-1", "newSchema": yaml_candidate})

    assert response.json()["status"] == "blocked"


def test_validate_rejects_unparseable_schema(client, store, petstore):
    _seed(store, petstore)

    response = client.post("/api/ci/validate", json={"projectId": "project-1", "newSchema": "- not\n- a mapping"})

    assert response.status_code == 422
    assert "not a mapping" in response.json()["message"]


def test_gate_uses_most_recently_updated_source(store, petstore):
    """The project baseline is the head version most recently updated."""
    other = {"openapi": "3.0.3", "paths": {"/orders": {"get": {"responses": {"200": {"description": "ok"}}}}}}
    _seed(store, other, source_id="orders")
    _seed(store, petstore, source_id="pets")

    decision = DeploymentGate(store).evaluate("project-1", copy.deepcopy(petstore))

    assert decision["status"] == "approved"
    assert decision["analysis"]["summary"] == "No changes detected"


def test_gate_raises_for_broken_reference(store, petstore):
    _seed(store, petstore)
    candidate = copy.deepcopy(petstore)
    candidate["paths"]["/pets"]["post"]["requestBody"]["content"]["application/json"]["schema"] = {
        "$ref": "#/components/schemas/Missing"
    }

    with pytest.raises(ValidationError):
        DeploymentGate(store).evaluate("project-1", candidate)


def test_gate_report(store, petstore):
    _seed(store, petstore)
    candidate = copy.deepcopy(petstore)
    del candidate["paths"]["/pets"]

    report = generate_gate_report(DeploymentGate(store).evaluate("project-1", candidate), "project-1")

    assert report.startswith("# 🛡️ Deployment Gate Report")
    assert "**Status:** ❌ BLOCKED" in report
    assert "## ❌ Breaking Changes" in report
    assert "Endpoint /pets was removed" in report


def test_analyze_endpoint_and_source_health(client, store, petstore, webhook_requests):
    store.add_alert_config("project-1", "webhook", {"url": "https://hooks.example.com/alerts"})
    first = client.post("/api/analyze", json={
        "sourceId": "spec-1", "projectId": "project-1", "rawContent": petstore,
    })
    assert first.json()["status"] == "baseline"

    candidate = copy.deepcopy(petstore)
    del candidate["paths"]["/pets/{petId}"]["delete"]
    second = client.post("/api/analyze", json={
        "sourceId": "spec-1", "projectId": "project-1", "rawContent": candidate, "commitRef": "abc123",
    })

    body = second.json()
    assert body["status"] == "analyzed"
    assert body["analysis"]["breakingChanges"][0]["type"] == "method_removed"
    assert body["alerts"] == [{
        "channel_type": "webhook", "success": True,
        "message": "POST https://hooks.example.com/alerts returned 200", "retriable": None,
    }]
    assert len(webhook_requests) == 1

    health = client.get("/api/sources/spec-1/health").json()
    assert health == {"sourceId": "spec-1", "state": "healthy", "lastError": None, "lastErrorAt": None}


def test_analyze_reports_parse_errors(client):
    response = client.post("/api/analyze", json={
        "sourceId": "spec-1", "projectId": "project-1", "rawContent": "{broken", "sourcePath": "openapi.json",
    })

    assert response.status_code == 200
    assert response.json()["status"] == "error"
    health = client.get("/api/sources/spec-1/health").json()
    assert health["state"] == "error"
    assert health["lastError"].startswith("JSON parsing failed")


def test_analyze_requires_identifiers(client):
    response = client.post("/api/analyze", json={"sourceId": "spec-1"})

    assert response.status_code == 400


def test_unknown_source_health(client):
    response = client.get("/api/sources/missing/health")

    assert response.status_code == 404


def test_test_alert_endpoint(client, store, webhook_requests):
    response = client.post("/api/alerts/test", json={
        "type": "webhook", "parameters": {"url": "https://hooks.example.com/alerts"},
    })

    body = response.json()
    assert body["success"] is True
    assert body["message"].startswith("Test alert sent successfully via webhook")
    assert len(webhook_requests) == 1
    assert store.get_alert_history("project-1") == []

    missing = client.post("/api/alerts/test", json={"parameters": {}})
    assert missing.status_code == 400
    assert missing.json() == {"message": "Channel type is required"}
