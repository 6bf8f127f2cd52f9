"""Fan-out of analysis results to configured alert channels."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..models import AlertChannelConfig, AlertDispatchOutcome, AnalysisResult, TestSendResult
from ..storage.sqlite_store import SQLiteStore
from ..utils.error_handling import ChannelConfigError, ChannelDeliveryError
from .channels import ChannelSettings, build_channel
from .renderer import AlertContext, AlertMessage, AlertRenderer
from .retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """Delivers one rendered alert to every active channel concurrently.

    A failing channel never affects its siblings: every exception raised
    while building or sending a channel is turned into an
    AlertDispatchOutcome.
    """

    def __init__(self, settings: Optional[ChannelSettings] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 renderer: Optional[AlertRenderer] = None,
                 store: Optional[SQLiteStore] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the dispatcher.

        Args:
            settings: Credentials and HTTP timeout for the channels
            retry_policy: Policy shared by all channels
            renderer: Message renderer
            store: Store receiving alert history (history is skipped when None)
            transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests
        """
        self.settings = settings or ChannelSettings()
        self.retry_policy = retry_policy or RetryPolicy()
        self.renderer = renderer or AlertRenderer()
        self.store = store
        self.transport = transport

    @classmethod
    def from_config(cls, config: Dict[str, Any], store: Optional[SQLiteStore] = None,
                    **kwargs) -> "AlertDispatcher":
        alerts = config.get("alerts", {})
        return cls(
            settings=ChannelSettings.from_config(config),
            retry_policy=RetryPolicy.from_config(config),
            renderer=AlertRenderer(alerts.get("dashboard_url", "http://localhost:5000")),
            store=store,
            **kwargs
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=httpx.Timeout(self.settings.timeout_seconds),
        )

    async def dispatch(self, result: AnalysisResult, configs: Sequence[AlertChannelConfig],
                       context: AlertContext, project_id: Optional[str] = None,
                       analysis_id: Optional[int] = None) -> List[AlertDispatchOutcome]:
        """Send an analysis result to all active channels.

        Args:
            result: Classified analysis to announce
            configs: Channel configurations of the project
            context: Project/source/commit information for the message
            project_id: Project the history entries belong to
            analysis_id: Stored analysis the alert refers to

        Returns:
            One outcome per active channel, in configuration order
        """
        active = [config for config in configs if config.is_active]
        if not active:
            logger.info(f"No active alert channels for {context.project_name}")
            return []

        message = self.renderer.render_alert(result, context)
        async with self._client() as client:
            outcomes = await asyncio.gather(
                *(self._deliver(config, message, client) for config in active)
            )
        outcomes = list(outcomes)

        delivered = sum(1 for outcome in outcomes if outcome.success)
        logger.info(f"Alert for {context.project_name} delivered to {delivered}/{len(outcomes)} channels")

        if self.store is not None and project_id is not None:
            await asyncio.to_thread(self.store.record_alert_outcomes, project_id, outcomes, analysis_id)
        return outcomes

    async def _deliver(self, config: AlertChannelConfig, message: AlertMessage,
                       client: httpx.AsyncClient) -> AlertDispatchOutcome:
        try:
            channel = build_channel(config, self.settings, self.retry_policy)
            detail = await channel.send(message, client)
        except ChannelConfigError as e:
            logger.error(f"{config.type} channel misconfigured: {e}")
            return AlertDispatchOutcome(config.type, False, str(e), retriable=False)
        except ChannelDeliveryError as e:
            logger.error(f"{config.type} delivery failed: {e}")
            return AlertDispatchOutcome(config.type, False, str(e), retriable=e.retriable)
        except Exception as e:
            logger.exception(f"Unexpected error delivering {config.type} alert")
            return AlertDispatchOutcome(config.type, False, f"Unexpected error: {e}", retriable=False)

        return AlertDispatchOutcome(config.type, True, detail)

    async def send_test(self, config: AlertChannelConfig) -> TestSendResult:
        """Send a synthetic test message through one channel.

        Test sends are never written to the alert history.
        """
        try:
            channel = build_channel(config, self.settings, self.retry_policy)
        except ChannelConfigError as e:
            return TestSendResult(success=False, message=f"Failed to send test alert: {e}")

        message = self.renderer.render_test(config.type)
        async with self._client() as client:
            result = await channel.send_test(message, client)

        logger.info(f"Test alert via {config.type}: {'ok' if result.success else 'failed'} ({result.message})")
        return result
