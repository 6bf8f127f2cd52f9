"""Test layered configuration loading."""

from api_sentinel.alerting import AlertDispatcher, ChannelSettings
from api_sentinel.utils.config import DEFAULT_CONFIG, load_config


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_toml_file_is_merged(tmp_path):
    config_file = tmp_path / "sentinel.toml"
    config_file.write_text(
        '[storage]\n'
        'database = "/var/lib/sentinel.db"\n'
        '\n'
        '[retry]\n'
        'max_attempts = 5\n'
    )

    config = load_config(str(config_file), environ={})

    assert config["storage"]["database"] == "/var/lib/sentinel.db"
    assert config["storage"]["busy_timeout_seconds"] == 10.0
    assert config["retry"] == {"max_attempts": 5, "backoff_seconds": [1.0, 2.0, 4.0]}


def test_environment_overrides_file(tmp_path):
    config_file = tmp_path / "sentinel.toml"
    config_file.write_text('[alerts]\nslack_bot_token = "from-file"\n')

    config = load_config(str(config_file), environ={
        "SLACK_BOT_TOKEN": "xoxb-env",
        "SENDGRID_API_KEY": "SG.env",
        "SENTINEL_HTTP_TIMEOUT": "2.5",
    })

    settings = ChannelSettings.from_config(config)
    assert settings.slack_bot_token == "xoxb-env"
    assert settings.sendgrid_api_key == "SG.env"
    assert settings.timeout_seconds == 2.5


def test_invalid_environment_value_is_ignored(tmp_path, caplog):
    config = load_config(str(tmp_path / "missing.toml"), environ={"SENTINEL_HTTP_TIMEOUT": "soon"})

    assert config["http"]["timeout_seconds"] == 10.0
    assert "SENTINEL_HTTP_TIMEOUT" in caplog.text


def test_dispatcher_from_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_config(environ={"SENTINEL_DASHBOARD_URL": "https://sentinel.example.com/"})
    config["retry"]["max_attempts"] = 2

    dispatcher = AlertDispatcher.from_config(config)

    assert dispatcher.retry_policy.max_attempts == 2
    assert dispatcher.renderer.dashboard_url == "https://sentinel.example.com"
