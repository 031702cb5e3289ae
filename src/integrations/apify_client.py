#!/usr/bin/env python3
"""
Synchronous Apify API client.

Used by CLI commands that run outside the event loop: checking actor access
and starting new actor runs. Monitoring itself goes through the async
poller and fetcher.
"""

import logging
from typing import Any, Dict, Optional

import requests

from core.config import ApifyConfig
from core.exceptions import ApiConnectionError, ApiResponseError

logger = logging.getLogger(__name__)


class ApifyClient:
    """Small requests-based client for actor endpoints."""

    def __init__(self, apify_config: ApifyConfig, timeout: Optional[int] = None,
                 user_agent: str = "Apify-Webhook-Relay/1.0"):
        """
        Initialize Apify client.

        Args:
            apify_config: Token, actor id and base URL
            timeout: Request timeout in seconds (defaults to the config value)
            user_agent: User-Agent string for requests
        """
        self.config = apify_config
        self.timeout = timeout or apify_config.request_timeout

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json",
        })

    @property
    def actor_url(self) -> str:
        return f"{self.config.base_url}/acts/{self.config.actor_id}"

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        params = dict(kwargs.pop('params', None) or {})
        params['token'] = self.config.token
        try:
            response = self.session.request(method, url, params=params,
                                            timeout=kwargs.pop('timeout', self.timeout), **kwargs)
        except requests.RequestException as e:
            raise ApiConnectionError(method, url, e) from e

        if not response.ok:
            raise ApiResponseError(method, url, response.status_code, response.text[:200])

        try:
            body = response.json()
        except ValueError as e:
            raise ApiResponseError(method, url, response.status_code, f"invalid JSON: {e}") from e

        if not isinstance(body, dict) or not isinstance(body.get('data'), dict):
            raise ApiResponseError(method, url, response.status_code, "missing 'data' object")
        return body['data']

    def get_actor(self, timeout: Optional[int] = None) -> Dict[str, Any]:
        """
        Fetch the configured actor's record.

        Raises:
            ApiConnectionError: Transport failure
            ApiResponseError: Non-2xx status or unexpected body
        """
        return self._request('GET', self.actor_url, timeout=timeout or self.timeout)

    def start_run(self, run_input: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Start a run of the configured actor.

        Args:
            run_input: Actor input object

        Returns:
            The new run's record (``id``, ``status``, ``defaultDatasetId``...)
        """
        run = self._request('POST', f"{self.actor_url}/runs", json=run_input or {})
        logger.info(f"Started actor run {run.get('id')} ({run.get('status')})")
        return run

    def test_connection(self, timeout: int = 10) -> bool:
        """Check that the token can read the configured actor."""
        try:
            actor = self.get_actor(timeout=timeout)
        except (ApiConnectionError, ApiResponseError) as e:
            logger.error(f"Apify API test failed: {e}")
            return False
        logger.info(f"Apify API test successful, actor name: {actor.get('name', 'Unknown')}")
        return True

    def close(self) -> None:
        self.session.close()
