#!/usr/bin/env python3
"""
CLI Router for the Apify Webhook Relay.

Modular command architecture: each top-level command maps to a command class.
"""

import argparse
import logging
import sys
from typing import Optional, List

# Load environment variables first
import core.env_loader  # Auto-loads .env file

from commands import get_command, COMMANDS
from core.config import LOG_FORMAT, get_config_manager
from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class CLIRouter:
    """
    CLI router for relay commands.

    Command structure:
    - python run.py runs watch <runId>
    - python run.py monitor start <runId> [<runId> ...]
    - python run.py server start --port 3000
    - python run.py integrations test
    """

    def __init__(self):
        """Initialize CLI router."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the main argument parser."""
        parser = argparse.ArgumentParser(
            description="Apify Webhook Relay - deliver scrape run results to your webhook",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=self._get_examples_text()
        )

        subparsers = parser.add_subparsers(
            dest='command',
            help='Available commands',
            metavar='{command}'
        )

        self._add_runs_parser(subparsers)
        self._add_monitor_parser(subparsers)
        self._add_server_parser(subparsers)
        self._add_integrations_parser(subparsers)

        return parser

    def _add_runs_parser(self, subparsers):
        """Add runs command parser."""
        runs_parser = subparsers.add_parser(
            'runs',
            help='Deliver, watch and start scrape runs'
        )

        runs_subparsers = runs_parser.add_subparsers(
            dest='subcommand',
            help='Run operations',
            metavar='{send,watch,start}'
        )

        send_parser = runs_subparsers.add_parser('send', help='Send the dataset of a finished run to the webhook once')
        send_parser.add_argument('run_id', help='Apify run ID')

        watch_parser = runs_subparsers.add_parser('watch', help='Poll a run until it finishes and deliver the result')
        watch_parser.add_argument('run_id', help='Apify run ID')

        start_parser = runs_subparsers.add_parser('start', help='Start a new actor run')
        start_parser.add_argument('--input', help='JSON file with the actor input (default: empty input)')
        start_parser.add_argument('--watch', action='store_true', help='Watch the new run and deliver its result')

    def _add_monitor_parser(self, subparsers):
        """Add monitor command parser."""
        monitor_parser = subparsers.add_parser(
            'monitor',
            help='Background monitoring of one or more runs'
        )

        monitor_subparsers = monitor_parser.add_subparsers(
            dest='subcommand',
            help='Monitor operations',
            metavar='{start,status,stop,stop-all}'
        )

        start_parser = monitor_subparsers.add_parser('start', help='Monitor runs in this process until they finish')
        start_parser.add_argument('run_ids', nargs='+', metavar='run_id', help='Apify run IDs')

        monitor_subparsers.add_parser('status', help='Show runs monitored by the relay server')

        stop_parser = monitor_subparsers.add_parser('stop', help='Stop monitoring a run on the relay server')
        stop_parser.add_argument('run_id', help='Apify run ID')

        monitor_subparsers.add_parser('stop-all', help='Stop every run monitored by the relay server')

    def _add_server_parser(self, subparsers):
        """Add server command parser."""
        server_parser = subparsers.add_parser(
            'server',
            help='HTTP-triggered relay server'
        )

        server_subparsers = server_parser.add_subparsers(
            dest='subcommand',
            help='Server operations',
            metavar='{start}'
        )

        start_parser = server_subparsers.add_parser('start', help='Start the relay server')
        start_parser.add_argument('--host', default=None, help='Bind address (default: SERVER_HOST or 127.0.0.1)')
        start_parser.add_argument('--port', type=int, default=None, help='Port (default: SERVER_PORT or 3000)')

    def _add_integrations_parser(self, subparsers):
        """Add integrations command parser."""
        integrations_parser = subparsers.add_parser(
            'integrations',
            help='External integration diagnostics'
        )

        integrations_subparsers = integrations_parser.add_subparsers(
            dest='subcommand',
            help='Integration operations',
            metavar='{test,status}'
        )

        integrations_subparsers.add_parser('test', help='Test the webhook and the Apify API')
        integrations_subparsers.add_parser('status', help='Show configuration status')

    def _get_examples_text(self) -> str:
        """Get examples text for help."""
        return """
Examples:
  # Deliver a finished run once
  python run.py runs send AbC123xyz

  # Watch a run (up to 30 minutes) and deliver the outcome
  python run.py runs watch AbC123xyz

  # Start a run from an input file and watch it
  python run.py runs start --input input.json --watch

  # Monitor several runs at once (up to 60 minutes each)
  python run.py monitor start AbC123xyz DeF456uvw

  # HTTP-triggered relay and its controls
  python run.py server start --port 3000
  python run.py monitor status
  python run.py monitor stop AbC123xyz

  # Diagnostics
  python run.py integrations test
  python run.py integrations status

"""

    def route_command(self, args: Optional[List[str]] = None) -> int:
        """
        Route command to appropriate handler.

        Args:
            args: Command line arguments (uses sys.argv if None)

        Returns:
            Exit code
        """
        try:
            if args is None:
                args = sys.argv[1:]

            parsed_args = self.parser.parse_args(args)

            if not parsed_args.command:
                self.parser.print_help()
                return 1

            return self._handle_command(parsed_args)

        except SystemExit as e:
            # argparse calls sys.exit() on error or help; usage errors exit 1
            return 0 if e.code in (None, 0) else 1
        except Exception as e:
            logger.error(f"CLI routing error: {e}", exc_info=True)
            return 1

    def _handle_command(self, args: argparse.Namespace) -> int:
        """Handle command structure."""
        logger.debug(f"Handling command: {args.command}")

        if args.command not in COMMANDS:
            available = ', '.join(COMMANDS.keys())
            logger.error(f"Unknown command '{args.command}'. Available: {available}")
            return 1

        subcommand = getattr(args, 'subcommand', None)
        if not subcommand:
            logger.error(f"No subcommand specified for '{args.command}'")
            try:
                self.parser.parse_args([args.command, '--help'])  # Show help
            except SystemExit:
                pass
            return 1

        try:
            command = get_command(args.command)
            return command.execute(subcommand, args)
        except Exception as e:
            logger.error(f"Error executing {args.command} {subcommand}: {e}", exc_info=True)
            return 1


def setup_logging() -> None:
    """Basic logging, then level/format/log file from configuration when it is valid."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    try:
        get_config_manager().update_logging()
    except ConfigurationError as e:
        # Reported again by the command that needs the configuration
        logger.debug(f"Logging left at defaults: {e}")


def main(args: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    setup_logging()

    router = CLIRouter()
    return router.route_command(args)


if __name__ == '__main__':
    exit_code = main()
    sys.exit(exit_code)
