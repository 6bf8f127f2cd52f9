"""Error taxonomy and logging helpers for api-sentinel."""

import logging
from typing import Optional


class SentinelError(Exception):
    """Base class for all api-sentinel errors."""


class ValidationError(SentinelError):
    """An API document is malformed or cannot be structurally resolved."""


class DiffError(SentinelError):
    """Structural comparison between two documents failed."""


class ClassificationGap(SentinelError):
    """A diff entry kind has no rule in the classification table.

    Never raised out of the classifier: gaps are logged and the entry is
    classified as safe/low.
    """

    def __init__(self, kind: str):
        super().__init__(f"No classification rule for change kind '{kind}'")
        self.kind = kind


class PersistenceError(SentinelError):
    """The version/analysis store failed."""


class ChannelDeliveryError(SentinelError):
    """An alert channel failed to deliver a message."""

    retriable = False

    def __init__(self, message: str, retriable: Optional[bool] = None):
        super().__init__(message)
        if retriable is not None:
            self.retriable = retriable


class ChannelConfigError(ChannelDeliveryError):
    """A channel is missing a required parameter or credential."""


class ChannelPermissionError(ChannelConfigError):
    """The destination refused the sender (missing scope, not in channel, ...)."""


class ChannelTransientError(ChannelDeliveryError):
    """Network error, rate limit or server error; safe to retry."""

    retriable = True


def get_standard_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Return a logger configured with the project's standard format.

    Args:
        name: Logger name, usually ``__name__``
        level: Logging level for the root configuration

    Returns:
        Configured logger instance
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(name)


def format_user_error(error: BaseException) -> str:
    """Render an exception as a one-line message suitable for CLI output."""
    if isinstance(error, ValidationError):
        return f"❌ Invalid API document: {error}"
    if isinstance(error, ChannelConfigError):
        return f"❌ Channel configuration error: {error}"
    if isinstance(error, PersistenceError):
        return f"❌ Storage error: {error}"
    if isinstance(error, SentinelError):
        return f"❌ {error}"
    return f"❌ Unexpected error ({type(error).__name__}): {error}"
