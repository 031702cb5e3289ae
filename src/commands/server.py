#!/usr/bin/env python3
"""
Server command endpoint: runs the HTTP-triggered relay.
"""

import logging
from argparse import Namespace

from aiohttp import web

from .base import BaseCommand
from core.container import create_monitor
from web.app import create_app, describe_routes
from integrations.webhook_dispatcher import AUTO_MONITOR_AGENT

logger = logging.getLogger(__name__)


class ServerCommand(BaseCommand):
    """Run the relay server."""

    def execute(self, subcommand: str, args: Namespace) -> int:
        """Execute server subcommand."""
        try:
            if subcommand == "start":
                return self.start(args)
            else:
                available = ", ".join(self.get_available_subcommands())
                self.logger.error(f"Unknown subcommand '{subcommand}'. Available: {available}")
                return 1

        except Exception as e:
            return self.handle_error(e, f"server {subcommand}")

    def start(self, args: Namespace) -> int:
        """Serve until interrupted; every active loop is stopped on shutdown."""
        config = self.config
        host = getattr(args, 'host', None)
        port = getattr(args, 'port', None)
        if host is None:
            host = config.server.host
        if port is None:
            port = config.server.port

        http = self.create_http_client()
        monitor = create_monitor(config, http, sender='auto-monitor', user_agent=AUTO_MONITOR_AGENT)
        app = create_app(monitor, data_manager=self.data_manager, cleanup=[http.close])

        base_url = f"http://{host}:{port}"
        print(f"🚀 Relay server running on {base_url}")
        for label, route in describe_routes(base_url).items():
            print(f"   • {label}: {route}")
        print(f"⏱️  Checks every {config.monitor.check_interval:g}s, up to {monitor.max_minutes:g} minutes per run")

        web.run_app(app, host=host, port=port, print=None)
        logger.info("Relay server stopped")
        return 0
