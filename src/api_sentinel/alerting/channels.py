"""Alert channel variants and the factory that builds them from configuration.

Each channel type maps to a builder in ``CHANNEL_BUILDERS``. Slack configs
resolve to one of three variants depending on which destinations are set:

1. Bot: ``{"channel": "C0123"}`` posts through ``chat.postMessage``
2. Incoming webhook: ``{"webhookUrl": "https://hooks.slack.com/..."}``
3. Hybrid: both set (and ``fallback`` not false); bot first, webhook on failure
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from ..models import AlertChannelConfig, TestSendResult
from ..utils.error_handling import (
    ChannelConfigError,
    ChannelDeliveryError,
    ChannelPermissionError,
    ChannelTransientError,
)
from .renderer import AlertMessage
from .retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api/chat.postMessage"
SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"
USER_AGENT = "API-Sentinel-Alert"

# Slack API errors that no amount of retrying or falling back will fix
SLACK_PERMISSION_ERRORS = frozenset({
    "missing_scope",
    "not_in_channel",
    "channel_not_found",
    "invalid_auth",
    "account_inactive",
    "no_permission",
    "token_revoked",
})
SLACK_TRANSIENT_ERRORS = frozenset({"ratelimited", "internal_error", "fatal_error", "service_unavailable"})


class ChannelType(Enum):
    SLACK = "slack"
    EMAIL = "email"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class ChannelSettings:
    """Process-wide credentials and limits shared by all channels."""
    slack_bot_token: str = ""
    slack_default_channel: str = ""
    sendgrid_api_key: str = ""
    from_email: str = "alerts@apisentinel.dev"
    timeout_seconds: float = 10.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ChannelSettings":
        alerts = config.get("alerts", {})
        return cls(
            slack_bot_token=alerts.get("slack_bot_token", ""),
            slack_default_channel=alerts.get("slack_default_channel", ""),
            sendgrid_api_key=alerts.get("sendgrid_api_key", ""),
            from_email=alerts.get("from_email", "alerts@apisentinel.dev"),
            timeout_seconds=float(config.get("http", {}).get("timeout_seconds", 10.0)),
        )


def _raise_for_status(response: httpx.Response, service: str):
    """Translate an HTTP error status into a typed delivery error."""
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        suffix = f", retry after {retry_after}s" if retry_after else ""
        raise ChannelTransientError(f"{service} rate limited (429){suffix}")
    if status >= 500:
        raise ChannelTransientError(f"{service} server error ({status})")
    if status in (401, 403):
        raise ChannelPermissionError(f"{service} rejected credentials ({status})")
    raise ChannelDeliveryError(f"{service} request failed with status {status}")


class AlertChannel:
    """Base class for a single configured delivery destination."""

    name = "channel"
    channel_type: ChannelType

    def __init__(self, settings: ChannelSettings, retry_policy: RetryPolicy):
        self.settings = settings
        self.retry_policy = retry_policy

    async def send(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        """Deliver a message, retrying transient failures.

        Returns:
            Human-readable delivery confirmation

        Raises:
            ChannelDeliveryError: If delivery ultimately fails
        """
        return await self.retry_policy.run(lambda: self._deliver(message, client), self.name)

    async def _deliver(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        raise NotImplementedError

    async def send_test(self, message: AlertMessage, client: httpx.AsyncClient) -> TestSendResult:
        try:
            detail = await self.send(message, client)
        except ChannelDeliveryError as e:
            return TestSendResult(success=False, message=f"Failed to send test alert: {e}")
        return TestSendResult(success=True, message=f"Test alert sent successfully via {self.name} ({detail})")

    async def _post(self, client: httpx.AsyncClient, url: str, service: str,
                    method: str = "POST", **kwargs) -> httpx.Response:
        try:
            return await client.request(method, url, timeout=self.settings.timeout_seconds, **kwargs)
        except httpx.TimeoutException as e:
            raise ChannelTransientError(f"{service} request timed out after {self.settings.timeout_seconds}s") from e
        except httpx.TransportError as e:
            raise ChannelTransientError(f"{service} request failed: {e}") from e


class BotChannel(AlertChannel):
    """Slack Web API delivery with a bot token."""

    name = "slack_bot"
    channel_type = ChannelType.SLACK

    def __init__(self, channel: str, settings: ChannelSettings, retry_policy: RetryPolicy):
        super().__init__(settings, retry_policy)
        self.channel = channel

    async def _deliver(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        if not self.settings.slack_bot_token:
            raise ChannelConfigError("Slack bot token not configured (SLACK_BOT_TOKEN)")
        channel = self.channel or self.settings.slack_default_channel
        if not channel:
            raise ChannelConfigError("Slack channel not specified")

        response = await self._post(
            client, SLACK_API_URL, "Slack API",
            json={"channel": channel, "text": message.title, "blocks": message.blocks},
            headers={"Authorization": f"Bearer {self.settings.slack_bot_token}", "User-Agent": USER_AGENT},
        )
        _raise_for_status(response, "Slack API")

        try:
            data = response.json()
        except ValueError as e:
            raise ChannelTransientError(f"Slack API returned invalid JSON: {e}") from e

        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            if error in SLACK_PERMISSION_ERRORS:
                raise ChannelPermissionError(f"Slack Bot API failed: {error}")
            if error in SLACK_TRANSIENT_ERRORS:
                raise ChannelTransientError(f"Slack Bot API failed: {error}")
            raise ChannelDeliveryError(f"Slack Bot API failed: {error}")

        return f"posted to Slack channel {channel}"


class IncomingWebhookChannel(AlertChannel):
    """Slack incoming webhook delivery."""

    name = "slack_webhook"
    channel_type = ChannelType.SLACK

    def __init__(self, webhook_url: str, settings: ChannelSettings, retry_policy: RetryPolicy):
        super().__init__(settings, retry_policy)
        self.webhook_url = webhook_url

    async def _deliver(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        response = await self._post(
            client, self.webhook_url, "Slack webhook",
            json={"text": message.title, "blocks": message.blocks},
            headers={"User-Agent": USER_AGENT},
        )
        _raise_for_status(response, "Slack webhook")
        return "posted to Slack incoming webhook"


class HybridSlackChannel(AlertChannel):
    """Bot delivery with incoming-webhook fallback.

    Permission errors from the bot are final: they are neither retried nor
    followed by the webhook attempt.
    """

    name = "slack_hybrid"
    channel_type = ChannelType.SLACK

    def __init__(self, bot: BotChannel, webhook: IncomingWebhookChannel):
        super().__init__(bot.settings, bot.retry_policy)
        self.bot = bot
        self.webhook = webhook

    async def send(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        try:
            return await self.bot.send(message, client)
        except ChannelPermissionError:
            raise
        except ChannelDeliveryError as e:
            logger.warning(f"Slack bot delivery failed, falling back to webhook: {e}")

        detail = await self.webhook.send(message, client)
        return f"{detail} (bot fallback)"

    async def send_test(self, message: AlertMessage, client: httpx.AsyncClient) -> TestSendResult:
        """Test both destinations independently."""
        details: Dict[str, Dict[str, Any]] = {}
        for label, channel in (("bot", self.bot), ("webhook", self.webhook)):
            try:
                await channel.send(message, client)
                details[label] = {"success": True, "message": f"{label.capitalize()} test successful"}
            except ChannelDeliveryError as e:
                details[label] = {"success": False, "message": str(e)}

        success = details["bot"]["success"] or details["webhook"]["success"]
        return TestSendResult(
            success=success,
            message="At least one Slack method is working" if success else "Both Slack methods failed",
            details=details,
        )


class EmailChannel(AlertChannel):
    """Email delivery through the SendGrid v3 API."""

    name = "email"
    channel_type = ChannelType.EMAIL

    def __init__(self, recipients: List[str], settings: ChannelSettings, retry_policy: RetryPolicy,
                 subject: Optional[str] = None):
        super().__init__(settings, retry_policy)
        self.recipients = recipients
        self.subject = subject

    async def _deliver(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        if not self.settings.sendgrid_api_key:
            raise ChannelConfigError("SendGrid API key not configured (SENDGRID_API_KEY)")

        payload = {
            "personalizations": [{"to": [{"email": address} for address in self.recipients]}],
            "from": {"email": self.settings.from_email, "name": "API Sentinel"},
            "subject": self.subject or message.email_subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.email_html},
            ],
        }
        response = await self._post(
            client, SENDGRID_API_URL, "SendGrid",
            json=payload,
            headers={"Authorization": f"Bearer {self.settings.sendgrid_api_key}", "User-Agent": USER_AGENT},
        )
        _raise_for_status(response, "SendGrid")
        return f"email sent to {', '.join(self.recipients)}"


class GenericWebhookChannel(AlertChannel):
    """JSON envelope posted to an arbitrary HTTP endpoint."""

    name = "webhook"
    channel_type = ChannelType.WEBHOOK

    def __init__(self, url: str, settings: ChannelSettings, retry_policy: RetryPolicy,
                 method: str = "POST", headers: Optional[Mapping[str, str]] = None):
        super().__init__(settings, retry_policy)
        self.url = url
        self.method = method.upper()
        self.headers = dict(headers or {})

    def envelope(self, message: AlertMessage) -> Dict[str, Any]:
        return {
            "timestamp": message.timestamp,
            "message": message.text,
            "source": "api-sentinel",
            "type": "test-alert" if message.is_test else "breaking-change-alert",
        }

    async def _deliver(self, message: AlertMessage, client: httpx.AsyncClient) -> str:
        headers = {"User-Agent": USER_AGENT, **self.headers}
        response = await self._post(
            client, self.url, "Webhook", method=self.method,
            json=self.envelope(message), headers=headers,
        )
        _raise_for_status(response, "Webhook")
        return f"{self.method} {self.url} returned {response.status_code}"


def _build_slack(parameters: Mapping[str, Any], settings: ChannelSettings,
                 retry_policy: RetryPolicy) -> AlertChannel:
    channel = parameters.get("channel")
    webhook_url = parameters.get("webhookUrl")

    if channel and webhook_url and parameters.get("fallback", True) is not False:
        return HybridSlackChannel(
            BotChannel(channel, settings, retry_policy),
            IncomingWebhookChannel(webhook_url, settings, retry_policy),
        )
    if channel:
        return BotChannel(channel, settings, retry_policy)
    if webhook_url:
        return IncomingWebhookChannel(webhook_url, settings, retry_policy)
    raise ChannelConfigError("Either channel or webhookUrl must be provided in Slack config")


def _build_email(parameters: Mapping[str, Any], settings: ChannelSettings,
                 retry_policy: RetryPolicy) -> AlertChannel:
    to = parameters.get("to")
    if not to:
        raise ChannelConfigError("Email recipient not specified")
    recipients = [to] if isinstance(to, str) else [str(address) for address in to]
    return EmailChannel(recipients, settings, retry_policy, subject=parameters.get("subject"))


def _build_webhook(parameters: Mapping[str, Any], settings: ChannelSettings,
                   retry_policy: RetryPolicy) -> AlertChannel:
    url = parameters.get("url")
    if not url:
        raise ChannelConfigError("Webhook URL not specified")
    return GenericWebhookChannel(
        url, settings, retry_policy,
        method=parameters.get("method", "POST"),
        headers=parameters.get("headers"),
    )


CHANNEL_BUILDERS: Dict[ChannelType, Callable[[Mapping[str, Any], ChannelSettings, RetryPolicy], AlertChannel]] = {
    ChannelType.SLACK: _build_slack,
    ChannelType.EMAIL: _build_email,
    ChannelType.WEBHOOK: _build_webhook,
}


def build_channel(config: AlertChannelConfig, settings: ChannelSettings,
                  retry_policy: RetryPolicy) -> AlertChannel:
    """Turn a channel configuration into its delivery variant.

    Raises:
        ChannelConfigError: For unknown channel types or missing parameters
    """
    try:
        channel_type = ChannelType(config.type)
    except ValueError:
        raise ChannelConfigError(f"Unknown alert channel type: {config.type}") from None
    return CHANNEL_BUILDERS[channel_type](config.parameters or {}, settings, retry_policy)
