"""Alert delivery: channel variants, retry policy, rendering and fan-out."""

from .channels import (
    CHANNEL_BUILDERS,
    AlertChannel,
    BotChannel,
    ChannelSettings,
    ChannelType,
    EmailChannel,
    GenericWebhookChannel,
    HybridSlackChannel,
    IncomingWebhookChannel,
    build_channel,
)
from .dispatcher import AlertDispatcher
from .renderer import AlertContext, AlertMessage, AlertRenderer
from .retry_policy import RetryPolicy

__all__ = [
    "CHANNEL_BUILDERS",
    "AlertChannel",
    "AlertContext",
    "AlertDispatcher",
    "AlertMessage",
    "AlertRenderer",
    "BotChannel",
    "ChannelSettings",
    "ChannelType",
    "EmailChannel",
    "GenericWebhookChannel",
    "HybridSlackChannel",
    "IncomingWebhookChannel",
    "RetryPolicy",
    "build_channel",
]
