#!/usr/bin/env python3
"""
Async HTTP client adapter.

Thin wrapper around an aiohttp session used by the poller, the dataset
fetcher and the webhook dispatcher. Every call carries its own timeout and
transport/status failures are raised as ApiConnectionError/ApiResponseError.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import ApiConnectionError, ApiResponseError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'Apify-Webhook-Relay/1.0'


@dataclass
class HttpResponse:
    """Status and body of a completed request."""
    status: int
    reason: str
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        # Lenient; only used for logging and error messages
        return self.body.decode('utf-8', errors='replace')

    def json(self) -> Any:
        """
        Decode the body as strict UTF-8 JSON.

        Raises:
            ValueError: Body is not valid UTF-8 or not valid JSON
        """
        if not self.body:
            return None
        return json.loads(self.body.decode('utf-8'))


class AsyncHttpClient:
    """Shared aiohttp session with per-request timeouts."""

    def __init__(self,
                 timeout: float = 30,
                 user_agent: str = DEFAULT_USER_AGENT):
        """
        Initialize HTTP client.

        Args:
            timeout: Default request timeout in seconds
            user_agent: Default User-Agent header
        """
        self.timeout = timeout
        self.user_agent = user_agent

        # Session will be created inside the running event loop
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={'User-Agent': self.user_agent}
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(self,
                      method: str,
                      url: str,
                      params: Optional[Dict[str, str]] = None,
                      json_body: Any = None,
                      headers: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None) -> HttpResponse:
        """
        Perform a request and return the response regardless of status.

        Raises:
            ApiConnectionError: If no response was received
        """
        session = self._get_session()
        request_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)

        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=request_timeout
            ) as response:
                body = await response.read()
                return HttpResponse(status=response.status, reason=response.reason or '', body=body)

        except asyncio.TimeoutError as e:
            raise ApiConnectionError(method, url, e) from e
        except aiohttp.ClientError as e:
            raise ApiConnectionError(method, url, e) from e

    async def get_json(self,
                       url: str,
                       params: Optional[Dict[str, str]] = None,
                       timeout: Optional[float] = None) -> Any:
        """
        GET a JSON document.

        Raises:
            ApiConnectionError: Transport failure
            ApiResponseError: Non-2xx status or a body that is not JSON
        """
        response = await self.request('GET', url, params=params, timeout=timeout)
        if not response.ok:
            raise ApiResponseError('GET', url, response.status, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise ApiResponseError('GET', url, None, f"invalid JSON body: {e}") from e

    async def post_json(self,
                        url: str,
                        payload: Any,
                        params: Optional[Dict[str, str]] = None,
                        headers: Optional[Dict[str, str]] = None,
                        timeout: Optional[float] = None) -> HttpResponse:
        """
        POST a JSON body.

        Raises:
            ApiConnectionError: Transport failure
            ApiResponseError: Non-2xx status
        """
        request_headers = {'Content-Type': 'application/json'}
        if headers:
            request_headers.update(headers)

        response = await self.request('POST', url, params=params, json_body=payload,
                                      headers=request_headers, timeout=timeout)
        if not response.ok:
            raise ApiResponseError('POST', url, response.status, response.text)

        logger.debug(f"POST {url} -> {response.status}")
        return response
