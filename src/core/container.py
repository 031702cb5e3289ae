#!/usr/bin/env python3
"""
Dependency Injection Container

Central place where the relay's components are wired together from the
validated configuration. Commands and the web server ask the container for
services instead of instantiating them, which lets tests register fakes.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Container:
    """Simple dependency injection container with singleton and factory services."""

    def __init__(self):
        """Initialize empty container."""
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._singleton_names = set()
        self._singletons: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def register_singleton(self, service_name: str, factory: Callable[[], T]) -> None:
        """
        Register a service created once and reused.

        Args:
            service_name: Unique name for the service
            factory: Function that creates the service instance
        """
        with self._lock:
            self._factories[service_name] = factory
            self._singleton_names.add(service_name)
            self._singletons.pop(service_name, None)

    def register_factory(self, service_name: str, factory: Callable[[], T]) -> None:
        """
        Register a service created anew on every ``get``.

        Args:
            service_name: Unique name for the service
            factory: Function that creates service instances
        """
        with self._lock:
            self._factories[service_name] = factory
            self._singleton_names.discard(service_name)

    def register_instance(self, service_name: str, instance: T) -> None:
        """Register an existing instance (tests use this to inject fakes)."""
        with self._lock:
            self._singletons[service_name] = instance

    def get(self, service_name: str) -> Any:
        """
        Get service instance by name.

        Raises:
            KeyError: If service is not registered
        """
        if service_name in self._singletons:
            return self._singletons[service_name]

        if service_name not in self._factories:
            raise KeyError(f"Service '{service_name}' not registered")

        with self._lock:
            factory = self._factories[service_name]
            if service_name in self._singleton_names:
                if service_name not in self._singletons:
                    self._singletons[service_name] = factory()
                    logger.debug(f"Created singleton instance for '{service_name}'")
                return self._singletons[service_name]

            instance = factory()
            logger.debug(f"Created new instance for '{service_name}'")
            return instance

    def clear(self) -> None:
        """Clear all registered services and instances."""
        with self._lock:
            self._factories.clear()
            self._singleton_names.clear()
            self._singletons.clear()


# Global container instance
_container: Optional[Container] = None
_container_lock = threading.Lock()


def get_container() -> Container:
    """Get global container instance (thread-safe singleton)."""
    global _container
    if _container is None:
        with _container_lock:
            if _container is None:
                _container = Container()
                _setup_default_services(_container)
    return _container


def reset_container() -> None:
    """Reset global container (useful for testing)."""
    global _container
    with _container_lock:
        if _container:
            _container.clear()
        _container = None


def _setup_default_services(container: Container) -> None:
    """Register the relay's services; all of them read the shared config."""

    def create_config():
        from core.config import get_config
        return get_config()

    def create_http_client():
        # One per event loop: aiohttp sessions must not outlive their loop
        from core.http_client import AsyncHttpClient
        config = container.get('config')
        return AsyncHttpClient(timeout=config.apify.request_timeout)

    def create_data_manager():
        from core.data_manager import DataManager
        config = container.get('config')
        return DataManager(base_dir=config.server.data_dir)

    def create_apify_client():
        from integrations.apify_client import ApifyClient
        return ApifyClient(container.get('config').apify)

    def create_server_client():
        from integrations.relay_server_client import RelayServerClient
        return RelayServerClient(container.get('config').server.url)

    container.register_singleton('config', create_config)
    container.register_singleton('data_manager', create_data_manager)
    container.register_singleton('apify_client', create_apify_client)
    container.register_singleton('server_client', create_server_client)
    container.register_factory('http_client', create_http_client)

    logger.debug("Default services registered in container")


def create_monitor(config, http_client, sender: str, user_agent: str,
                   max_attempts: Optional[int] = None, registry=None,
                   notify_on_delivery_failure: bool = True):
    """
    Build a RunMonitor wired to the real poller, fetcher and dispatcher.

    Args:
        config: Validated relay configuration
        http_client: AsyncHttpClient bound to the current event loop
        sender: Label stored in ``metadata.deliveredBy``
        user_agent: User-Agent for webhook posts
        max_attempts: Attempt budget (defaults to ``config.monitor.max_attempts``)
        registry: Optional shared RunRegistry
        notify_on_delivery_failure: Follow a failed data delivery with an error notification
    """
    from core.dataset_fetcher import DatasetFetcher
    from core.models.payload import PayloadBuilder
    from core.monitor import RunMonitor
    from core.run_poller import RunStatusPoller
    from integrations.webhook_dispatcher import WebhookDispatcher

    return RunMonitor(
        poller=RunStatusPoller(http_client, config.apify),
        fetcher=DatasetFetcher(http_client, config.apify),
        dispatcher=WebhookDispatcher(http_client, config.webhook, user_agent=user_agent),
        payloads=PayloadBuilder(sender=sender, webhook_url=config.webhook.url),
        check_interval=config.monitor.check_interval,
        max_attempts=max_attempts or config.monitor.max_attempts,
        registry=registry,
        notify_on_delivery_failure=notify_on_delivery_failure
    )

