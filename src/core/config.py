#!/usr/bin/env python3
"""
Centralized Configuration Manager

Provides a single source of truth for all relay configuration: Apify API
access, webhook delivery, monitoring cadence, the relay server and logging.
Configuration is built from the environment once, validated, and then
passed explicitly into the poller, fetcher, dispatcher and monitor.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from .env_loader import parse_bool
from .exceptions import ConfigurationError
from .security import validate_webhook_url

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = 'https://api.apify.com/v2'
DEFAULT_ACTOR_ID = 'code_crafter~apollo-io-scraper'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
VERBOSE_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'


@dataclass
class ApifyConfig:
    """Scrape job API configuration."""
    token: str
    actor_id: str = DEFAULT_ACTOR_ID
    base_url: str = DEFAULT_API_BASE_URL
    request_timeout: int = 30  # seconds


@dataclass
class WebhookConfig:
    """Webhook delivery configuration."""
    url: str
    require_https: bool = True
    timeout: int = 60  # success payloads can be large
    notify_timeout: int = 30
    test_timeout: int = 10


@dataclass
class MonitorConfig:
    """Polling cadence and monitor bookkeeping."""
    check_interval: float = 30.0
    max_attempts: int = 120  # background monitor / server: 60 minutes
    watch_max_attempts: int = 60  # one-shot watcher: 30 minutes
    log_file: Optional[str] = 'monitor.log'
    display_timezone: str = 'UTC'

    @property
    def max_minutes(self) -> float:
        return self.max_attempts * self.check_interval / 60


@dataclass
class ServerConfig:
    """Relay HTTP server configuration."""
    host: str = '127.0.0.1'
    port: int = 3000
    public_url: Optional[str] = None
    data_dir: str = 'data'

    @property
    def url(self) -> str:
        return self.public_url or f"http://{self.host}:{self.port}"


@dataclass
class ApplicationConfig:
    """Logging and runtime configuration."""
    log_level: str = "INFO"
    verbose_logging: bool = False


@dataclass
class Config:
    """Master configuration container."""
    apify: ApifyConfig
    webhook: WebhookConfig
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    app: ApplicationConfig = field(default_factory=ApplicationConfig)


def validate_config(config: Config) -> List[str]:
    """Return every validation problem found in ``config``."""
    errors = []

    if not config.apify.token:
        errors.append("APIFY_TOKEN environment variable is required")

    if not config.webhook.url:
        errors.append("WEBHOOK_URL environment variable is required")
    else:
        problem = validate_webhook_url(config.webhook.url, config.webhook.require_https)
        if problem:
            errors.append(f"WEBHOOK_URL: {problem}")

    if not config.apify.base_url.startswith(('http://', 'https://')):
        errors.append("APIFY_API_BASE_URL must be an http(s) URL")

    if not config.apify.actor_id:
        errors.append("APIFY_ACTOR_ID must not be empty")

    # Validate numeric ranges
    if config.monitor.check_interval <= 0:
        errors.append("MONITOR_CHECK_INTERVAL must be positive")

    if config.monitor.max_attempts < 1:
        errors.append("MONITOR_MAX_ATTEMPTS must be at least 1")

    if config.monitor.watch_max_attempts < 1:
        errors.append("WATCH_MAX_ATTEMPTS must be at least 1")

    for name, value in (('APIFY_REQUEST_TIMEOUT', config.apify.request_timeout),
                        ('WEBHOOK_TIMEOUT', config.webhook.timeout),
                        ('WEBHOOK_NOTIFY_TIMEOUT', config.webhook.notify_timeout)):
        if value < 1:
            errors.append(f"{name} must be at least 1 second")

    if not 1 <= config.server.port <= 65535:
        errors.append("SERVER_PORT must be between 1 and 65535")

    # Validate log level
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config.app.log_level not in valid_log_levels:
        errors.append(f"LOG_LEVEL must be one of: {', '.join(valid_log_levels)}")

    return errors


class ConfigManager:
    """Manages relay configuration with validation and environment loading."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            environ: Mapping to read variables from (defaults to os.environ)
        """
        self._config: Optional[Config] = None
        self._environ = environ if environ is not None else os.environ
        self._parse_errors: List[str] = []

    def get_config(self, force_reload: bool = False) -> Config:
        """
        Get validated relay configuration.

        Args:
            force_reload: Force reloading configuration from environment

        Returns:
            Complete configuration object

        Raises:
            ConfigurationError: If any setting is missing or invalid
        """
        if self._config is None or force_reload:
            config = self._build_config()
            errors = self._parse_errors + validate_config(config)
            if errors:
                raise ConfigurationError('environment', '; '.join(errors))
            logger.info("Configuration validation passed")
            self._config = config
        return self._config

    def get_config_status(self) -> Dict[str, Any]:
        """Describe configuration health without raising."""
        config = self._build_config()
        errors = self._parse_errors + validate_config(config)
        return {
            'is_configured': not errors,
            'errors': errors,
            'settings': {
                'has_api_token': bool(config.apify.token),
                'has_webhook_url': bool(config.webhook.url),
                'actor_id': config.apify.actor_id,
                'webhook_url': config.webhook.url,
                'api_base_url': config.apify.base_url,
                'check_interval': config.monitor.check_interval,
                'max_attempts': config.monitor.max_attempts,
                'server_url': config.server.url,
            }
        }

    def _build_config(self) -> Config:
        """Build configuration from environment variables."""
        self._parse_errors = []

        apify_config = ApifyConfig(
            token=self._env('APIFY_TOKEN', ''),
            actor_id=self._env('APIFY_ACTOR_ID', DEFAULT_ACTOR_ID),
            base_url=self._env('APIFY_API_BASE_URL', DEFAULT_API_BASE_URL).rstrip('/'),
            request_timeout=self._int_env('APIFY_REQUEST_TIMEOUT', 30)
        )

        webhook_config = WebhookConfig(
            url=self._env('WEBHOOK_URL', ''),
            require_https=self._bool_env('WEBHOOK_REQUIRE_HTTPS', True),
            timeout=self._int_env('WEBHOOK_TIMEOUT', 60),
            notify_timeout=self._int_env('WEBHOOK_NOTIFY_TIMEOUT', 30)
        )

        monitor_config = MonitorConfig(
            check_interval=self._float_env('MONITOR_CHECK_INTERVAL', 30.0),
            max_attempts=self._int_env('MONITOR_MAX_ATTEMPTS', 120),
            watch_max_attempts=self._int_env('WATCH_MAX_ATTEMPTS', 60),
            log_file=self._env('MONITOR_LOG_FILE', 'monitor.log') or None,
            display_timezone=self._env('DISPLAY_TIMEZONE', 'UTC')
        )

        server_config = ServerConfig(
            host=self._env('SERVER_HOST', '127.0.0.1'),
            port=self._int_env('SERVER_PORT', 3000),
            public_url=self._env('SERVER_URL', '') or None,
            data_dir=self._env('RECEIVER_DATA_DIR', 'data')
        )

        app_config = ApplicationConfig(
            log_level=self._env('LOG_LEVEL', 'INFO').upper(),
            verbose_logging=self._bool_env('VERBOSE_LOGGING', False)
        )

        return Config(
            apify=apify_config,
            webhook=webhook_config,
            monitor=monitor_config,
            server=server_config,
            app=app_config
        )

    def _env(self, key: str, default: str) -> str:
        value = self._environ.get(key)
        return value.strip() if value is not None else default

    def _bool_env(self, key: str, default: bool) -> bool:
        return parse_bool(self._environ.get(key), default)

    def _int_env(self, key: str, default: int) -> int:
        raw = self._environ.get(key)
        if raw is None or raw.strip() == '':
            return default
        try:
            return int(raw)
        except ValueError:
            self._parse_errors.append(f"{key} must be an integer, got {raw!r}")
            return default

    def _float_env(self, key: str, default: float) -> float:
        raw = self._environ.get(key)
        if raw is None or raw.strip() == '':
            return default
        try:
            return float(raw)
        except ValueError:
            self._parse_errors.append(f"{key} must be a number, got {raw!r}")
            return default

    def update_logging(self) -> None:
        """Configure logging based on current configuration."""
        config = self.get_config()
        configure_logging(config)


def configure_logging(config: Config) -> None:
    """Apply log level, format and the optional monitor log file."""
    numeric_level = getattr(logging, config.app.log_level)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    format_str = VERBOSE_LOG_FORMAT if config.app.verbose_logging else LOG_FORMAT
    formatter = logging.Formatter(format_str, datefmt='%Y-%m-%d %H:%M:%S')

    # Update existing handlers
    for handler in root.handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)

    log_file = config.monitor.log_file
    if log_file:
        log_path = os.path.abspath(log_file)
        already_attached = any(
            isinstance(h, logging.FileHandler) and getattr(h, 'baseFilename', None) == log_path
            for h in root.handlers
        )
        if not already_attached:
            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
            logger.debug(f"Logging to {log_path}")


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> Config:
    """Get application configuration."""
    return get_config_manager().get_config()


def reset_config() -> None:
    """Reset configuration manager (useful for testing)."""
    global _config_manager
    _config_manager = None
