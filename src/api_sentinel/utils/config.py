"""Configuration loading for api-sentinel.

Configuration is layered: built-in defaults, then an optional TOML file,
then environment variables (secrets are expected to come from the
environment rather than the file).
"""

import copy
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "api_sentinel.toml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "storage": {
        "database": "api_sentinel.db",
        "busy_timeout_seconds": 10.0,
    },
    "alerts": {
        "slack_bot_token": "",
        "slack_default_channel": "",
        "sendgrid_api_key": "",
        "from_email": "alerts@apisentinel.dev",
        "dashboard_url": "http://localhost:5000",
    },
    "retry": {
        "max_attempts": 3,
        "backoff_seconds": [1.0, 2.0, 4.0],
    },
    "http": {
        "timeout_seconds": 10.0,
    },
}

# environment variable -> (section, key, converter)
_ENV_OVERRIDES = {
    "SENTINEL_DATABASE": ("storage", "database", str),
    "SLACK_BOT_TOKEN": ("alerts", "slack_bot_token", str),
    "SLACK_CHANNEL_ID": ("alerts", "slack_default_channel", str),
    "SENDGRID_API_KEY": ("alerts", "sendgrid_api_key", str),
    "SENTINEL_FROM_EMAIL": ("alerts", "from_email", str),
    "SENTINEL_DASHBOARD_URL": ("alerts", "dashboard_url", str),
    "SENTINEL_HTTP_TIMEOUT": ("http", "timeout_seconds", float),
}


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load configuration from defaults, a TOML file and the environment.

    Args:
        config_path: Path to a TOML file. A missing file is not an error.
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Merged configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    environ = os.environ if environ is None else environ

    config_file = Path(config_path or DEFAULT_CONFIG_PATH)
    if config_file.exists():
        with open(config_file, 'rb') as f:
            _merge(config, tomllib.load(f))
        logger.debug(f"Loaded configuration from {config_file}")
    elif config_path:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    for env_name, (section, key, converter) in _ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw:
            try:
                config[section][key] = converter(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_name}: {raw!r}")

    return config
