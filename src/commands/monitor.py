#!/usr/bin/env python3
"""
Monitor command endpoints.

``monitor start`` runs the monitoring loops in this process. The other
subcommands control a running relay server, which owns its own loops.
"""

import asyncio
import logging
import signal
from argparse import Namespace
from typing import List

from .base import BaseCommand
from core.container import create_monitor
from core.formatters import format_monitor_status, format_result
from integrations.webhook_dispatcher import BACKGROUND_MONITOR_AGENT

logger = logging.getLogger(__name__)


class MonitorCommand(BaseCommand):
    """Background monitoring of one or more runs."""

    def execute(self, subcommand: str, args: Namespace) -> int:
        """Execute monitor subcommand."""
        try:
            if subcommand == "start":
                return self.start(args)
            elif subcommand == "status":
                return self.status(args)
            elif subcommand == "stop":
                return self.stop(args)
            elif subcommand == "stop-all":
                return self.stop_all(args)
            else:
                available = ", ".join(self.get_available_subcommands())
                self.logger.error(f"Unknown subcommand '{subcommand}'. Available: {available}")
                return 1

        except Exception as e:
            return self.handle_error(e, f"monitor {subcommand}")

    def start(self, args: Namespace) -> int:
        """Monitor runs in the foreground until every loop has finished."""
        run_ids = self.validate_run_ids(args.run_ids)
        return asyncio.run(self._monitor_runs(run_ids))

    def status(self, args: Namespace) -> int:
        """Show runs monitored by the relay server."""
        status = self.server_client.monitor_status()
        print(format_monitor_status(status, self.config.monitor.display_timezone))
        return 0

    def stop(self, args: Namespace) -> int:
        """Stop monitoring one run on the relay server."""
        run_id, = self.validate_run_ids([args.run_id])
        response = self.server_client.stop_monitor(run_id)
        if response.get('success'):
            print(f"⏹️  Stopped monitoring run {run_id}")
            return 0
        print(f"❌ {response.get('error', f'No active monitor for run {run_id}')}")
        return 1

    def stop_all(self, args: Namespace) -> int:
        """Stop every run monitored by the relay server."""
        stopped = self.server_client.stop_all()
        print(f"⏹️  Stopped {len(stopped)} monitors" + (f": {', '.join(stopped)}" if stopped else ""))
        return 0

    async def _monitor_runs(self, run_ids: List[str]) -> int:
        config = self.config
        async with self.create_http_client() as http:
            monitor = create_monitor(config, http, sender='background-monitor',
                                     user_agent=BACKGROUND_MONITOR_AGENT)
            self._install_signal_handlers(monitor)

            for run_id in run_ids:
                monitor.start_monitoring(run_id, metadata={'source': 'cli'})
            print(f"🔄 Monitoring {len(monitor.registry)} runs "
                  f"(every {config.monitor.check_interval:g}s, up to {monitor.max_minutes:g} minutes)")

            try:
                results = await monitor.wait_all()
            finally:
                await monitor.close()

        for result in results:
            print(format_result(result))
        logger.info("No active monitors, exiting")
        return 0

    def _install_signal_handlers(self, monitor) -> None:
        loop = asyncio.get_running_loop()

        def shutdown(sig_name: str):
            logger.info(f"Received {sig_name}, stopping all monitors")
            monitor.stop_all()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform; Ctrl+C still interrupts the process
                logger.debug(f"Signal handler for {sig.name} not installed")
