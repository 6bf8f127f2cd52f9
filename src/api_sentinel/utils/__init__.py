"""Utility modules for api-sentinel."""

from .error_handling import (
    SentinelError,
    ValidationError,
    DiffError,
    ClassificationGap,
    PersistenceError,
    ChannelDeliveryError,
    ChannelConfigError,
    ChannelPermissionError,
    ChannelTransientError,
    get_standard_logger,
    format_user_error,
)
from .config import load_config, DEFAULT_CONFIG

__all__ = [
    'SentinelError',
    'ValidationError',
    'DiffError',
    'ClassificationGap',
    'PersistenceError',
    'ChannelDeliveryError',
    'ChannelConfigError',
    'ChannelPermissionError',
    'ChannelTransientError',
    'get_standard_logger',
    'format_user_error',
    'load_config',
    'DEFAULT_CONFIG',
]
