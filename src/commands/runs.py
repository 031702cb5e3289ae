#!/usr/bin/env python3
"""
Runs command endpoints: one-shot delivery, watching and starting runs.
"""

import asyncio
import json
import logging
from argparse import Namespace

from .base import BaseCommand
from core.container import create_monitor
from core.dataset_fetcher import DatasetFetcher
from core.exceptions import DispatchError, FetchError, MissingDatasetError, TransientPollError
from core.formatters import format_result
from core.models.payload import PayloadBuilder
from core.models.run import RunStatus
from core.run_poller import RunStatusPoller
from integrations.webhook_dispatcher import AUTO_MONITOR_AGENT, SENDER_AGENT, WebhookDispatcher

logger = logging.getLogger(__name__)


class RunsCommand(BaseCommand):
    """Deliver, watch and start scrape runs."""

    def execute(self, subcommand: str, args: Namespace) -> int:
        """Execute runs subcommand."""
        try:
            if subcommand == "send":
                return self.send(args)
            elif subcommand == "watch":
                return self.watch(args)
            elif subcommand == "start":
                return self.start(args)
            else:
                available = ", ".join(self.get_available_subcommands())
                self.logger.error(f"Unknown subcommand '{subcommand}'. Available: {available}")
                return 1

        except Exception as e:
            return self.handle_error(e, f"runs {subcommand}")
        except KeyboardInterrupt as e:
            return self.handle_error(e, f"runs {subcommand}")

    def send(self, args: Namespace) -> int:
        """Deliver the dataset of an already finished run once, without polling."""
        run_id, = self.validate_run_ids([args.run_id])
        return asyncio.run(self._send(run_id))

    def watch(self, args: Namespace) -> int:
        """Poll a run until it finishes and deliver the outcome."""
        run_id, = self.validate_run_ids([args.run_id])
        return asyncio.run(self._watch(run_id))

    def start(self, args: Namespace) -> int:
        """Start a new actor run, optionally watching it."""
        run_input = {}
        if getattr(args, 'input', None):
            with open(args.input, 'r', encoding='utf-8') as f:
                run_input = json.load(f)
            if not isinstance(run_input, dict):
                raise ValueError(f"Actor input in {args.input} must be a JSON object")

        run = self.apify_client.start_run(run_input)
        run_id = run.get('id')
        print(f"🚀 Started run {run_id} ({run.get('status', 'UNKNOWN')})")
        if run.get('defaultDatasetId'):
            print(f"📦 Dataset: {run['defaultDatasetId']}")

        if getattr(args, 'watch', False) and run_id:
            return asyncio.run(self._watch(run_id))
        return 0

    async def _send(self, run_id: str) -> int:
        config = self.config
        async with self.create_http_client() as http:
            poller = RunStatusPoller(http, config.apify)
            fetcher = DatasetFetcher(http, config.apify)
            dispatcher = WebhookDispatcher(http, config.webhook, user_agent=SENDER_AGENT)

            try:
                run = await poller.poll(run_id)
            except TransientPollError as e:
                print(f"❌ Could not get run status: {e}")
                return 1

            print(f"📋 Run {run_id}: {run.raw_status}")
            if run.status is not RunStatus.SUCCEEDED:
                print(f"❌ Run has not succeeded (status: {run.raw_status}), nothing to send")
                return 1

            try:
                records = await fetcher.fetch_for_run(run)
            except (MissingDatasetError, FetchError) as e:
                print(f"❌ {e}")
                return 1

            if not records:
                logger.warning(f"[{run_id}] Dataset is empty, nothing sent to webhook")
                print("⚠️  Run succeeded but the dataset is empty, nothing sent")
                return 0

            payload = PayloadBuilder(sender='sender', webhook_url=config.webhook.url).success(run, records)
            try:
                await dispatcher.deliver(payload)
            except DispatchError as e:
                print(f"❌ {e}")
                return 1

            print(f"✅ Sent {len(records)} records to {config.webhook.url}")
            return 0

    async def _watch(self, run_id: str) -> int:
        config = self.config
        async with self.create_http_client() as http:
            monitor = create_monitor(
                config, http,
                sender='auto-monitor',
                user_agent=AUTO_MONITOR_AGENT,
                max_attempts=config.monitor.watch_max_attempts,
                notify_on_delivery_failure=False
            )
            print(f"👀 Watching run {run_id} (checking every {config.monitor.check_interval:g}s, "
                  f"up to {monitor.max_minutes:g} minutes)")
            try:
                result = await monitor.monitor_run(run_id)
            finally:
                await monitor.close()

        print(format_result(result))
        return result.exit_code
