#!/usr/bin/env python3
"""
Dataset fetcher.

Retrieves the records a succeeded run produced. An empty dataset is a
normal result and is returned as an empty list.
"""

import logging
from typing import Any, Dict, List

from .config import ApifyConfig
from .exceptions import ApiError, FetchError, MissingDatasetError
from .http_client import AsyncHttpClient
from .models.run import RunInfo

logger = logging.getLogger(__name__)


class DatasetFetcher:
    """Downloads dataset items for a run."""

    def __init__(self, http_client: AsyncHttpClient, apify_config: ApifyConfig):
        self.http = http_client
        self.config = apify_config

    def items_url(self, dataset_id: str) -> str:
        return f"{self.config.base_url}/datasets/{dataset_id}/items"

    async def fetch(self, dataset_id: str) -> List[Dict[str, Any]]:
        """
        Fetch all items of a dataset.

        Raises:
            FetchError: Transport/HTTP failure or a body that is not a list
        """
        try:
            body = await self.http.get_json(
                self.items_url(dataset_id),
                params={'token': self.config.token, 'format': 'json'},
                timeout=self.config.request_timeout
            )
        except ApiError as e:
            raise FetchError(dataset_id, e) from e

        if not isinstance(body, list):
            raise FetchError(dataset_id, ValueError(f"expected a JSON array, got {type(body).__name__}"))

        logger.debug(f"Dataset {dataset_id}: {len(body)} items")
        return body

    async def fetch_for_run(self, run: RunInfo) -> List[Dict[str, Any]]:
        """
        Fetch the default dataset of a run.

        Raises:
            MissingDatasetError: The run record has no dataset id
            FetchError: See ``fetch``
        """
        if not run.dataset_id:
            raise MissingDatasetError(run.run_id)
        logger.info(f"[{run.run_id}] Retrieving data from dataset: {run.dataset_id}")
        return await self.fetch(run.dataset_id)
