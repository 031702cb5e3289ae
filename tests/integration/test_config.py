import logging
from dataclasses import fields

import pytest

from core.config import Config, ConfigManager, configure_logging
from core.dataset_fetcher import DatasetFetcher
from core.env_loader import load_env_file, parse_bool, parse_env_line
from core.exceptions import ConfigurationError
from core.run_poller import RunStatusPoller

VALID_ENV = {
    "APIFY_TOKEN": "apify_api_token",
    "WEBHOOK_URL": "https://hooks.example.com/run-data",
}


def test_defaults_applied_from_minimal_environment():
    config = ConfigManager(environ=dict(VALID_ENV)).get_config()

    assert config.apify.base_url == "https://api.apify.com/v2"
    assert config.apify.actor_id == "code_crafter~apollo-io-scraper"
    assert config.monitor.check_interval == 30.0
    assert config.monitor.max_attempts == 120
    assert config.monitor.watch_max_attempts == 60
    assert config.monitor.max_minutes == 60
    assert config.webhook.timeout == 60
    assert config.webhook.notify_timeout == 30
    assert config.server.url == "http://127.0.0.1:3000"


def test_overrides_are_read_from_environment():
    env = dict(VALID_ENV,
               APIFY_API_BASE_URL="http://localhost:8080/v2/",
               MONITOR_CHECK_INTERVAL="5",
               MONITOR_MAX_ATTEMPTS="12",
               SERVER_PORT="8081",
               LOG_LEVEL="debug")

    config = ConfigManager(environ=env).get_config()

    assert config.apify.base_url == "http://localhost:8080/v2"
    assert config.monitor.check_interval == 5.0
    assert config.monitor.max_attempts == 12
    assert config.server.port == 8081
    assert config.app.log_level == "DEBUG"
    assert RunStatusPoller(None, config.apify).status_url("abc") == "http://localhost:8080/v2/actor-runs/abc"
    assert DatasetFetcher(None, config.apify).items_url("ds") == "http://localhost:8080/v2/datasets/ds/items"


def test_config_holds_only_settings_sections():
    assert [f.name for f in fields(Config)] == ["apify", "webhook", "monitor", "server", "app"]


def test_missing_token_and_webhook_are_reported_together():
    with pytest.raises(ConfigurationError) as excinfo:
        ConfigManager(environ={}).get_config()

    message = str(excinfo.value)
    assert "APIFY_TOKEN" in message
    assert "WEBHOOK_URL" in message


def test_webhook_must_use_https_by_default():
    env = dict(VALID_ENV, WEBHOOK_URL="http://hooks.example.com/run-data")

    with pytest.raises(ConfigurationError) as excinfo:
        ConfigManager(environ=env).get_config()
    assert "HTTPS" in str(excinfo.value)

    env["WEBHOOK_REQUIRE_HTTPS"] = "false"
    assert ConfigManager(environ=env).get_config().webhook.url.startswith("http://")


def test_non_numeric_values_are_configuration_errors():
    env = dict(VALID_ENV, MONITOR_MAX_ATTEMPTS="lots")

    with pytest.raises(ConfigurationError) as excinfo:
        ConfigManager(environ=env).get_config()
    assert "MONITOR_MAX_ATTEMPTS must be an integer" in str(excinfo.value)


def test_config_status_never_raises():
    status = ConfigManager(environ={"WEBHOOK_URL": "https://hooks.example.com/x"}).get_config_status()

    assert status["is_configured"] is False
    assert status["settings"]["has_api_token"] is False
    assert status["settings"]["has_webhook_url"] is True
    assert any("APIFY_TOKEN" in error for error in status["errors"])


def test_parse_bool_values():
    assert parse_bool("true") is True
    assert parse_bool("YES") is True
    assert parse_bool("0") is False
    assert parse_bool(None, default=True) is True
    assert parse_bool("  ", default=True) is True


def test_env_file_does_not_override_existing_variables(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# relay settings\n"
        "RELAY_TEST_NEW='from-file'\n"
        "export RELAY_TEST_EXPORTED=yes\n"
        "RELAY_TEST_EXISTING=from-file\n"
        "not a valid line\n",
        encoding="utf-8",
    )
    environ = {"RELAY_TEST_EXISTING": "from-env"}

    loaded = load_env_file(str(env_file), environ=environ)

    assert loaded == 2
    assert environ == {
        "RELAY_TEST_NEW": "from-file",
        "RELAY_TEST_EXPORTED": "yes",
        "RELAY_TEST_EXISTING": "from-env",
    }


def test_parse_env_line():
    assert parse_env_line("  # comment") is None
    assert parse_env_line("") is None
    assert parse_env_line("KEY=\"a=b\"") == ("KEY", "a=b")
    assert parse_env_line("export KEY = value ") == ("KEY", "value")
    with pytest.raises(ValueError):
        parse_env_line("=value")


def test_configure_logging_attaches_monitor_log_file(tmp_path):
    log_file = tmp_path / "monitor.log"
    env = dict(VALID_ENV, MONITOR_LOG_FILE=str(log_file), LOG_LEVEL="INFO")
    config = ConfigManager(environ=env).get_config()
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level

    try:
        configure_logging(config)
        configure_logging(config)
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1
        assert isinstance(added[0], logging.FileHandler)
        logging.getLogger("relay.test").info("written to the monitor log")
        added[0].flush()
        assert "written to the monitor log" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)
