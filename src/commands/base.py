#!/usr/bin/env python3
"""
Base command class for the modular command architecture.

Provides common functionality and interface that all commands inherit.
Uses dependency injection for better testability and maintainability.
"""

import logging
from abc import ABC, abstractmethod
from argparse import Namespace
from typing import List

from core.container import get_container
from core.exceptions import ApiError, ConfigurationError, InvalidRunIdError, RelayError
from core.security import validate_run_id

logger = logging.getLogger(__name__)


class BaseCommand(ABC):
    """
    Base class for all relay command endpoints.

    Provides access to configuration and services from the dependency
    injection container plus shared error handling.
    """

    def __init__(self, container=None):
        """
        Initialize base command with dependency injection container.

        Args:
            container: Optional container instance. If None, uses global container.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self._container = container or get_container()

    @property
    def config(self):
        """Get validated configuration from container."""
        return self._container.get('config')

    @property
    def data_manager(self):
        """Get receiver data manager from container."""
        return self._container.get('data_manager')

    @property
    def apify_client(self):
        """Get synchronous Apify client from container."""
        return self._container.get('apify_client')

    @property
    def server_client(self):
        """Get relay server client from container."""
        return self._container.get('server_client')

    def create_http_client(self):
        """Create a new async HTTP client (one per event loop)."""
        return self._container.get('http_client')

    @abstractmethod
    def execute(self, subcommand: str, args: Namespace) -> int:
        """
        Execute the command with given subcommand and arguments.

        Args:
            subcommand: The specific action to perform
            args: Parsed command line arguments

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        pass

    def get_available_subcommands(self) -> List[str]:
        """Names of the public methods that implement subcommands."""
        methods = []
        for attr_name in dir(self):
            if attr_name.startswith('_') or not callable(getattr(self, attr_name)):
                continue
            if attr_name not in ['execute', 'get_available_subcommands', 'handle_error',
                                 'validate_run_ids', 'create_http_client']:
                methods.append(attr_name)
        return methods

    def validate_run_ids(self, run_ids: List[str]) -> List[str]:
        """
        Validate run ids given on the command line.

        Raises:
            InvalidRunIdError: For the first malformed id
        """
        return [validate_run_id(run_id) for run_id in run_ids]

    def handle_error(self, error: Exception, context: str = "") -> int:
        """
        Standard error handling for commands.

        Args:
            error: The exception that occurred
            context: Additional context about where the error occurred

        Returns:
            Appropriate exit code
        """
        error_msg = f"{context}: {error}" if context else str(error)

        # Expected failures are reported without a traceback
        if isinstance(error, (InvalidRunIdError, ConfigurationError, ApiError)):
            self.logger.error(error_msg)
            print(f"❌ {error}")
            return 1
        elif isinstance(error, KeyboardInterrupt):
            self.logger.info("Command interrupted by user")
            return 130

        self.logger.error(error_msg, exc_info=True)
        if isinstance(error, RelayError):
            return 1
        elif isinstance(error, FileNotFoundError):
            return 2
        elif isinstance(error, PermissionError):
            return 13
        elif isinstance(error, ValueError):
            return 22
        else:
            return 1
