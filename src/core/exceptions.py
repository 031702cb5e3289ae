#!/usr/bin/env python3
"""
Standardized exception hierarchy for the webhook relay.

Provides specific exception types for the run monitoring pipeline
(polling, dataset retrieval, webhook delivery) with error context that
can be logged or embedded in webhook failure payloads.
"""

from typing import Optional, Dict, Any


class RelayError(Exception):
    """Base exception for all webhook relay errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            context: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context
        }


# HTTP / API exceptions
class ApiError(RelayError):
    """Base exception for errors talking to a remote HTTP endpoint."""
    pass


class ApiConnectionError(ApiError):
    """Request never produced a response (DNS, refused, timeout)."""

    def __init__(self, method: str, url: str, original_error: Exception):
        detail = str(original_error) or type(original_error).__name__
        message = f"{method} {url} failed: {detail}"
        context = {
            'method': method,
            'url': url,
            'original_error': detail
        }
        super().__init__(message, context=context)


class ApiResponseError(ApiError):
    """Endpoint answered with a non-2xx status or an unreadable body."""

    def __init__(self, method: str, url: str, status: Optional[int], detail: str = ""):
        message = f"{method} {url} returned HTTP {status}" if status is not None else f"{method} {url}: {detail}"
        if status is not None and detail:
            message += f": {detail[:200]}"
        context = {
            'method': method,
            'url': url,
            'status': status,
            'detail': detail[:500]
        }
        super().__init__(message, context=context)
        self.status = status


# Run monitoring exceptions
class MonitoringError(RelayError):
    """Base exception for run monitoring errors."""
    pass


class TransientPollError(MonitoringError):
    """Status poll failed (network, 5xx, malformed body); retried up to the budget."""

    def __init__(self, run_id: str, original_error: Exception):
        message = f"Status poll failed for run {run_id}: {original_error}"
        context = {
            'run_id': run_id,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)
        self.run_id = run_id


class TerminalRunFailure(MonitoringError):
    """The provider reported the run as FAILED or ABORTED."""

    def __init__(self, run_id: str, status: str):
        message = f"Run {run_id} finished with status {status}"
        context = {
            'run_id': run_id,
            'status': status
        }
        super().__init__(message, context=context)
        self.run_id = run_id
        self.status = status


class MissingDatasetError(MonitoringError):
    """A succeeded run carries no dataset identifier."""

    def __init__(self, run_id: str):
        message = "No dataset ID found in run data"
        context = {'run_id': run_id}
        super().__init__(message, context=context)
        self.run_id = run_id


# Name used by the dataset fetcher contract
NoDatasetError = MissingDatasetError


class FetchError(MonitoringError):
    """Dataset items could not be retrieved."""

    def __init__(self, dataset_id: str, original_error: Exception):
        message = f"Failed to fetch dataset {dataset_id}: {original_error}"
        context = {
            'dataset_id': dataset_id,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)
        self.dataset_id = dataset_id


class DispatchError(RelayError):
    """Webhook POST failed."""

    def __init__(self, url: str, original_error: Exception, run_id: Optional[str] = None):
        message = f"Webhook delivery to {url} failed: {original_error}"
        context = {
            'url': url,
            'run_id': run_id,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)
        self.url = url


# Input / configuration exceptions
class InvalidRunIdError(RelayError):
    """Run id does not match the provider's id format."""

    def __init__(self, run_id: str):
        message = f"Invalid run ID format: {run_id!r}"
        super().__init__(message, context={'run_id': run_id})


class ConfigurationError(RelayError):
    """Configuration is invalid or missing."""

    def __init__(self, config_key: str, issue: str):
        message = f"Configuration error for {config_key}: {issue}"
        context = {
            'config_key': config_key,
            'issue': issue
        }
        super().__init__(message, context=context)


# Recovery utilities
class ErrorRecovery:
    """Utilities for deciding how the monitor loop treats an error."""

    @staticmethod
    def is_retryable_error(error: Exception) -> bool:
        """Check if an error is retried by the polling loop."""
        retryable_types = [
            TransientPollError,
            ApiConnectionError,
        ]
        if isinstance(error, ApiResponseError):
            return error.status is None or error.status >= 500 or error.status == 429
        return any(isinstance(error, error_type) for error_type in retryable_types)

    @staticmethod
    def describe(error: Exception) -> str:
        """Short message suitable for a webhook failure payload."""
        if isinstance(error, RelayError):
            return error.message
        return str(error) or type(error).__name__
