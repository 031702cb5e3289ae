#!/usr/bin/env python3
"""
Webhook integration for delivering run results.

Posts run data, empty-result notices and failure notifications to the
user's webhook. Data deliveries report failures to the caller; failure
notifications are best-effort and only logged.
"""

import logging
from typing import Optional

import requests

from core.config import WebhookConfig
from core.exceptions import ApiError, DispatchError
from core.http_client import AsyncHttpClient, HttpResponse
from core.models.payload import PayloadBuilder, WebhookPayload

logger = logging.getLogger(__name__)

# User-Agent per sender variant
BACKGROUND_MONITOR_AGENT = 'Apify-Webhook-Relay-Background-Monitor/1.0'
AUTO_MONITOR_AGENT = 'Apify-Webhook-Relay-Auto-Monitor/1.0'
SENDER_AGENT = 'Apify-Webhook-Relay-Sender/1.0'
TEST_AGENT = 'Apify-Webhook-Relay-Test/1.0'


class WebhookDispatcher:
    """Handles sending payloads to the configured webhook."""

    def __init__(self,
                 http_client: AsyncHttpClient,
                 webhook_config: WebhookConfig,
                 user_agent: str = BACKGROUND_MONITOR_AGENT):
        """
        Initialize webhook dispatcher.

        Args:
            http_client: Shared async HTTP client
            webhook_config: Webhook URL and timeouts
            user_agent: User-Agent identifying the sender variant
        """
        if not webhook_config.url:
            raise ValueError("Webhook URL not provided and not found in WEBHOOK_URL environment variable")

        self.http = http_client
        self.config = webhook_config
        self.user_agent = user_agent

    @property
    def url(self) -> str:
        return self.config.url

    async def dispatch(self, payload: WebhookPayload, raise_on_error: bool = True,
                       timeout: Optional[float] = None) -> bool:
        """
        Send a payload to the webhook.

        Args:
            payload: Body to post
            raise_on_error: Raise DispatchError instead of returning False
            timeout: Override for the request timeout

        Returns:
            True if the webhook answered 2xx, False otherwise (when not raising)
        """
        body = payload.to_dict()
        run_id = payload.run_id
        try:
            response = await self.http.post_json(
                self.config.url,
                body,
                headers={'User-Agent': self.user_agent},
                timeout=timeout or self.config.timeout
            )
        except ApiError as e:
            if raise_on_error:
                raise DispatchError(self.config.url, e, run_id=run_id) from e
            logger.error(f"[{run_id}] Failed to send webhook notification: {e}")
            return False

        self._log_response(run_id, payload, response)
        return True

    async def deliver(self, payload: WebhookPayload) -> bool:
        """
        Deliver a data payload; failures propagate.

        Raises:
            DispatchError: If the webhook could not be reached or answered non-2xx
        """
        logger.info(f"[{payload.run_id}] Sending {payload.total_records} records to webhook")
        return await self.dispatch(payload, raise_on_error=True, timeout=self.config.timeout)

    async def notify(self, payload: WebhookPayload) -> bool:
        """Send a failure/timeout notification; never raises on delivery errors."""
        return await self.dispatch(payload, raise_on_error=False, timeout=self.config.notify_timeout)

    def _log_response(self, run_id: Optional[str], payload: WebhookPayload, response: HttpResponse) -> None:
        kind = "Webhook" if payload.success else "Webhook notification"
        logger.info(f"[{run_id}] {kind} sent: {response.status} {response.reason}".rstrip())
        if response.text:
            logger.debug(f"[{run_id}] Webhook response data: {response.text[:500]}")

    def test_connection(self) -> bool:
        """Post a test payload synchronously to verify the webhook is reachable."""
        payload = PayloadBuilder(sender='connection-test', webhook_url=self.config.url).test()
        try:
            response = requests.post(
                self.config.url,
                json=payload.to_dict(),
                timeout=self.config.test_timeout,
                verify=True,
                headers={"Content-Type": "application/json", "User-Agent": TEST_AGENT}
            )

            if response.ok:
                logger.info(f"Webhook test successful: {response.status_code} {response.reason}")
                return True
            else:
                logger.error(f"Webhook test failed with status {response.status_code}: {response.text[:200]}")
                return False

        except requests.RequestException as e:
            logger.error(f"Webhook test failed: {e}")
            return False
