#!/usr/bin/env python3
"""
Client for a running relay server.

Monitoring state lives in the server process that owns the loops, so the
``monitor status/stop/stop-all`` commands talk to it over HTTP.
"""

import logging
from typing import Any, Dict, List

import requests

from core.exceptions import ApiConnectionError, ApiResponseError

logger = logging.getLogger(__name__)


class RelayServerClient:
    """requests-based client for the relay server's control endpoints."""

    def __init__(self, base_url: str, timeout: int = 10):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    def _call(self, method: str, path: str, json_body: Any = None,
              allowed_statuses: tuple = ()) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=json_body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiConnectionError(method, url, e) from e

        if not response.ok and response.status_code not in allowed_statuses:
            raise ApiResponseError(method, url, response.status_code, response.text[:200])

        try:
            body = response.json()
        except ValueError as e:
            raise ApiResponseError(method, url, response.status_code, f"invalid JSON: {e}") from e
        body = body if isinstance(body, dict) else {}
        body.setdefault('status_code', response.status_code)
        return body

    def health(self) -> Dict[str, Any]:
        return self._call('GET', '/health')

    def start_monitor(self, run_id: str) -> Dict[str, Any]:
        return self._call('POST', '/start-monitor', {'runId': run_id}, allowed_statuses=(400,))

    def monitor_status(self) -> Dict[str, Any]:
        return self._call('GET', '/monitor-status')

    def stop_monitor(self, run_id: str) -> Dict[str, Any]:
        """Ask the server to stop one run; ``success`` is False when untracked."""
        return self._call('POST', '/stop-monitor', {'runId': run_id}, allowed_statuses=(400, 404))

    def stop_all(self) -> List[str]:
        body = self._call('POST', '/stop-all')
        return list(body.get('stopped', []))
