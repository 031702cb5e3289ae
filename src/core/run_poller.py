#!/usr/bin/env python3
"""
Run status poller.

One poll is one GET against the provider's run-status endpoint. The poller
never retries or sleeps; the monitor loop owns the cadence and the attempt
budget.
"""

import logging
from typing import Any

from .config import ApifyConfig
from .exceptions import ApiError, TransientPollError
from .http_client import AsyncHttpClient
from .models.run import RunInfo, RunStatus

logger = logging.getLogger(__name__)


class RunStatusPoller:
    """Queries the status endpoint for a run id."""

    def __init__(self, http_client: AsyncHttpClient, apify_config: ApifyConfig):
        self.http = http_client
        self.config = apify_config

    def status_url(self, run_id: str) -> str:
        return f"{self.config.base_url}/actor-runs/{run_id}"

    async def poll(self, run_id: str) -> RunInfo:
        """
        Fetch the current state of a run.

        Args:
            run_id: Provider run identifier

        Returns:
            Parsed run record

        Raises:
            TransientPollError: Network failure, non-2xx, or malformed body
        """
        try:
            body = await self.http.get_json(
                self.status_url(run_id),
                params={'token': self.config.token},
                timeout=self.config.request_timeout
            )
        except ApiError as e:
            raise TransientPollError(run_id, e) from e

        return self.parse_run(run_id, body)

    def parse_run(self, run_id: str, body: Any) -> RunInfo:
        """Parse a ``{"data": {...}}`` run record."""
        data = body.get('data') if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise TransientPollError(run_id, ValueError("response has no 'data' object"))

        raw_status = data.get('status')
        if not isinstance(raw_status, str) or not raw_status:
            raise TransientPollError(run_id, ValueError("run record has no status"))

        status = RunStatus.from_provider(raw_status)
        if status is None:
            logger.warning(f"[{run_id}] Unknown run status '{raw_status}', treating as in progress")
            status = RunStatus.RUNNING

        return RunInfo.from_api(run_id, data, status)
