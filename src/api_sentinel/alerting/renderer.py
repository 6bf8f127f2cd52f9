"""Rendering of analysis results into channel-ready alert messages."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..models import AnalysisResult, Severity

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

ALERT_TITLE = "API Sentinel Alert"
TEST_TITLE = "API Sentinel Test Alert"

# Slack rejects section text longer than 3000 characters
_SLACK_TEXT_LIMIT = 3000
_SLACK_MAX_CHANGE_BLOCKS = 10

_SEVERITY_ICONS = {
    Severity.CRITICAL: "🔴",
    Severity.HIGH: "🟠",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "🟢",
}


@dataclass(frozen=True)
class AlertContext:
    """Where a change came from, as shown in alert messages."""
    project_name: str
    source_path: Optional[str] = None
    commit_ref: Optional[str] = None


@dataclass(frozen=True)
class AlertMessage:
    """A message rendered once per dispatch and shared by all channels."""
    title: str
    text: str
    blocks: List[Dict[str, Any]]
    email_subject: str
    email_html: str
    timestamp: str
    is_test: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class AlertRenderer:
    """Builds plain-text, Slack Block Kit and HTML email bodies."""

    def __init__(self, dashboard_url: str = "http://localhost:5000",
                 templates_dir: Optional[Path] = None):
        """Initialize the renderer.

        Args:
            dashboard_url: Base URL used for "View Details" links
            templates_dir: Directory holding the ``*.j2`` templates
        """
        self.dashboard_url = dashboard_url.rstrip("/")
        self.templates_dir = Path(templates_dir) if templates_dir else TEMPLATES_DIR

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True
        )

    def render_alert(self, result: AnalysisResult, context: AlertContext,
                     timestamp: Optional[str] = None) -> AlertMessage:
        """Render a breaking-change alert for an analysis result."""
        timestamp = timestamp or datetime.now(timezone.utc).isoformat()
        title = f"{ALERT_TITLE} - {context.project_name}"
        template_context = {
            "title": title,
            "result": result,
            "context": context,
            "timestamp": timestamp,
            "dashboard_url": self.dashboard_url,
        }

        text = self.jinja_env.get_template("alert_message.txt.j2").render(**template_context)
        html = self.jinja_env.get_template("alert_email.html.j2").render(
            icon="🚨", accent="#dc3545", lines=[], **template_context
        )

        return AlertMessage(
            title=title,
            text=text.strip() + "\n",
            blocks=self._alert_blocks(title, result, context),
            email_subject=self._email_subject(result, context),
            email_html=html,
            timestamp=timestamp,
            metadata={
                "project": context.project_name,
                "severity": result.overall_severity.value,
                "breaking_changes": len(result.breaking_changes),
            },
        )

    def render_test(self, channel_type: str, timestamp: Optional[str] = None) -> AlertMessage:
        """Render the synthetic message used by test sends."""
        timestamp = timestamp or datetime.now(timezone.utc).isoformat()
        text = self.jinja_env.get_template("test_message.txt.j2").render(
            title=TEST_TITLE, channel_type=channel_type, timestamp=timestamp
        )
        lines = text.strip().splitlines()
        html = self.jinja_env.get_template("alert_email.html.j2").render(
            title=TEST_TITLE,
            icon="✅",
            accent="#28a745",
            result=None,
            context=None,
            lines=[line for line in lines[1:] if line.strip()],
            timestamp=timestamp,
            dashboard_url=self.dashboard_url,
        )

        return AlertMessage(
            title=TEST_TITLE,
            text=text.strip() + "\n",
            blocks=self._text_blocks(lines[0], "\n".join(lines[1:]).strip()),
            email_subject=TEST_TITLE,
            email_html=html,
            timestamp=timestamp,
            is_test=True,
        )

    @staticmethod
    def _email_subject(result: AnalysisResult, context: AlertContext) -> str:
        if result.has_breaking_changes:
            return (f"[{result.overall_severity.value.upper()}] {len(result.breaking_changes)} "
                    f"breaking change(s) in {context.project_name}")
        return f"API changes detected in {context.project_name}"

    def _alert_blocks(self, title: str, result: AnalysisResult,
                      context: AlertContext) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*🚨 {title}*"}},
            {"type": "section", "text": {"type": "mrkdwn", "text": _truncate(result.summary)}},
        ]

        for change in result.breaking_changes[:_SLACK_MAX_CHANGE_BLOCKS]:
            icon = _SEVERITY_ICONS[change.severity]
            blocks.append({
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": _truncate(
                        f"{icon} *{change.severity.value.upper()}* `{change.path}`\n"
                        f"{change.description}\n_Impact:_ {change.impact}\n"
                        f"_Recommendation:_ {change.recommendation}"
                    ),
                },
            })

        remaining = len(result.breaking_changes) - _SLACK_MAX_CHANGE_BLOCKS
        if remaining > 0:
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"…and {remaining} more breaking change(s)"}],
            })

        details = [f"*Project:* {context.project_name}"]
        if context.source_path:
            details.append(f"*Source:* `{context.source_path}`")
        if context.commit_ref:
            details.append(f"*Commit:* `{context.commit_ref}`")
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": " | ".join(details)}]})
        blocks.append(self._details_button())
        return blocks

    def _text_blocks(self, title: str, details: str) -> List[Dict[str, Any]]:
        return [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{title}*"}},
            {"type": "section", "text": {"type": "plain_text", "text": _truncate(details)}},
            self._details_button(),
        ]

    def _details_button(self) -> Dict[str, Any]:
        return {
            "type": "actions",
            "elements": [{
                "type": "button",
                "text": {"type": "plain_text", "text": "View Details"},
                "style": "primary",
                "url": f"{self.dashboard_url}/monitoring",
            }],
        }


def _truncate(text: str, limit: int = _SLACK_TEXT_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"
