#!/usr/bin/env python3
"""
Input validation for the relay.

Run ids arrive from the command line and from HTTP requests, and end up in
provider URLs, so they are checked here first.
"""

import logging
import re
import urllib.parse
from typing import Any, Optional

from .exceptions import InvalidRunIdError

logger = logging.getLogger(__name__)

RUN_ID_PATTERN = re.compile(r'^[a-zA-Z0-9]+$')
MAX_RUN_ID_LENGTH = 64


def is_valid_run_id(run_id: Any) -> bool:
    """True if ``run_id`` looks like a provider run id (alphanumeric)."""
    return (
        isinstance(run_id, str)
        and 0 < len(run_id) <= MAX_RUN_ID_LENGTH
        and bool(RUN_ID_PATTERN.match(run_id))
    )


def validate_run_id(run_id: Any) -> str:
    """
    Validate a run id.

    Returns:
        The run id, unchanged

    Raises:
        InvalidRunIdError: If the id is empty or not alphanumeric
    """
    if not is_valid_run_id(run_id):
        logger.warning(f"Rejected run ID: {run_id!r}")
        raise InvalidRunIdError(str(run_id))
    return run_id


def validate_webhook_url(url: str, require_https: bool = True) -> Optional[str]:
    """
    Check a webhook URL.

    Returns:
        A description of the problem, or None if the URL is acceptable
    """
    if not url:
        return "URL is empty"
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return "URL is not a valid http(s) URL"
    if require_https and parsed.scheme != 'https':
        return "URL must use HTTPS"
    return None
