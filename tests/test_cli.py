"""Test CLI functionality."""

import copy
import json
import subprocess
import sys

import pytest

from api_sentinel.cli import SentinelCLI
from api_sentinel.cli.sentinel_cli import _parse_parameters
from api_sentinel.storage.sqlite_store import SQLiteStore


def test_cli_help_and_description():
    """Test that CLI help command works and contains expected content."""
    result = subprocess.run(
        [sys.executable, "-m", "api_sentinel.cli", "--help"], capture_output=True, text=True
    )
    assert result.returncode == 0

    assert "breaking-change detection" in result.stdout
    assert "api-sentinel" in result.stdout
    for command in ("diff", "analyze", "validate", "test-alert", "serve"):
        assert command in result.stdout


def test_cli_invalid_args():
    """Test CLI with invalid arguments."""
    result = subprocess.run(
        [sys.executable, "-m", "api_sentinel.cli", "--invalid-flag"],
        capture_output=True,
        text=True,
    )
    assert result.returncode != 0
    assert "error:" in result.stderr.lower() or "usage:" in result.stderr.lower()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def documents(workdir, petstore):
    old = workdir / "openapi-v1.json"
    new = workdir / "openapi-v2.json"
    changed = copy.deepcopy(petstore)
    del changed["paths"]["/pets/{petId}"]
    old.write_text(json.dumps(petstore))
    new.write_text(json.dumps(changed))
    return old, new


def test_no_command_prints_help(workdir, capsys):
    assert SentinelCLI().run([]) == 1
    assert "usage:" in capsys.readouterr().out


def test_diff_reports_breaking_changes(documents, capsys):
    old, new = documents

    exit_code = SentinelCLI().run(["diff", str(old), str(new)])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "🚨 Breaking Changes:" in output
    assert "[CRITICAL] /pets/{petId}: Endpoint /pets/{petId} was removed" in output


def test_diff_json_and_fail_on_breaking(documents, capsys):
    old, new = documents

    exit_code = SentinelCLI().run(["diff", str(old), str(new), "--json", "--fail-on-breaking"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["severity"] == "critical"
    assert [c["type"] for c in payload["breakingChanges"]] == ["endpoint_removed"]


def test_diff_invalid_document(workdir, capsys):
    broken = workdir / "broken.json"
    broken.write_text("{not json")

    exit_code = SentinelCLI().run(["diff", str(broken), str(broken)])

    assert exit_code == 1
    assert "❌ Invalid API document: JSON parsing failed" in capsys.readouterr().out


def test_analyze_then_validate(documents, workdir, capsys):
    old, new = documents
    database = str(workdir / "cli.db")

    assert SentinelCLI().run([
        "--database", database, "analyze", str(old), "--source-id", "spec-1", "--project-id", "project-1",
    ]) == 0
    assert "Baseline version" in capsys.readouterr().out

    report_path = workdir / "gate.md"
    exit_code = SentinelCLI().run([
        "--database", database, "validate", str(new), "--project-id", "project-1",
        "--environment", "production", "--output", str(report_path),
    ])

    assert exit_code == 1
    assert "❌ BLOCKED" in capsys.readouterr().out
    assert report_path.read_text().startswith("# 🛡️ Deployment Gate Report")

    assert SentinelCLI().run([
        "--database", database, "validate", str(old), "--project-id", "project-1",
    ]) == 0


def test_health_reports_source_state(documents, workdir, capsys):
    old, _ = documents
    database = str(workdir / "cli.db")
    SentinelCLI().run(["--database", database, "analyze", str(old),
                       "--source-id", "spec-1", "--project-id", "project-1"])
    capsys.readouterr()

    assert SentinelCLI().run(["--database", database, "health", "--source-id", "spec-1"]) == 0
    assert "Source spec-1: healthy" in capsys.readouterr().out
    assert SentinelCLI().run(["--database", database, "health", "--source-id", "missing"]) == 1


def test_add_channel_stores_config(workdir, capsys):
    database = str(workdir / "cli.db")

    exit_code = SentinelCLI().run([
        "--database", database, "add-channel", "--project-id", "project-1", "--type", "slack",
        "--param", "channel=C0123", "--param", "webhookUrl=https://hooks.slack.com/services/x",
    ])

    assert exit_code == 0
    assert "slack_hybrid" in capsys.readouterr().out
    configs = SQLiteStore(database).get_alert_configs("project-1")
    assert [(c.type, c.parameters["channel"]) for c in configs] == [("slack", "C0123")]


def test_add_channel_rejects_invalid_config(workdir, capsys):
    database = str(workdir / "cli.db")

    exit_code = SentinelCLI().run([
        "--database", database, "add-channel", "--project-id", "project-1", "--type", "email",
    ])

    assert exit_code == 1
    assert "Email recipient not specified" in capsys.readouterr().out
    assert SQLiteStore(database).get_alert_configs("project-1") == []


def test_parse_parameters():
    parameters = _parse_parameters(["fallback=false", "channel=C0123"], '{"webhookUrl": "https://x"}')

    assert parameters == {"webhookUrl": "https://x", "fallback": False, "channel": "C0123"}
    with pytest.raises(ValueError):
        _parse_parameters(["novalue"], None)
