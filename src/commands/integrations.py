#!/usr/bin/env python3
"""
Integrations command endpoints for checking external service connections.
"""

import logging
from argparse import Namespace

from .base import BaseCommand
from core.config import get_config_manager

logger = logging.getLogger(__name__)


class IntegrationsCommand(BaseCommand):
    """Handle external integration diagnostics."""

    def execute(self, subcommand: str, args: Namespace) -> int:
        """Execute integrations subcommand."""
        try:
            if subcommand == "test":
                return self.test(args)
            elif subcommand == "status":
                return self.status(args)
            else:
                available = ", ".join(self.get_available_subcommands())
                self.logger.error(f"Unknown subcommand '{subcommand}'. Available: {available}")
                return 1

        except Exception as e:
            return self.handle_error(e, f"integrations {subcommand}")

    def test(self, args: Namespace) -> int:
        """Test the webhook and the Apify API."""
        print("🔍 Testing integrations...")

        webhook_status = self._test_webhook()
        apify_status = self._test_apify()

        print("\n=== Integration Test Results ===")
        print(f"🔗 Webhook: {'✅ PASS' if webhook_status else '❌ FAIL'}")
        print(f"🔗 Apify API: {'✅ PASS' if apify_status else '❌ FAIL'}")

        if webhook_status and apify_status:
            print("✅ All integrations working")
            return 0
        else:
            print("⚠️  Some integrations failed - check configuration")
            return 1

    def status(self, args: Namespace) -> int:
        """Show configuration status without contacting any service."""
        status = get_config_manager().get_config_status()
        settings = status['settings']

        print("📊 Integration Status:")
        print("🔑 Environment Variables:")
        print(f"   • APIFY_TOKEN: {'✅ Set' if settings['has_api_token'] else '❌ Missing'}")
        print(f"   • WEBHOOK_URL: {settings['webhook_url'] or '❌ Missing'}")
        print(f"   • APIFY_ACTOR_ID: {settings['actor_id']}")
        print(f"   • APIFY_API_BASE_URL: {settings['api_base_url']}")
        print(f"\n⏱️  Monitoring: every {settings['check_interval']:g}s, up to {settings['max_attempts']} checks")
        print(f"🖥️  Relay server: {settings['server_url']}")

        if status['is_configured']:
            print("\n✅ Configuration is ready")
            return 0

        print("\n⚠️  Configuration issues found:")
        for error in status['errors']:
            print(f"   • {error}")
        return 1

    def _test_webhook(self) -> bool:
        """Post a test payload to the webhook."""
        from integrations.webhook_dispatcher import WebhookDispatcher

        dispatcher = WebhookDispatcher(self.create_http_client(), self.config.webhook)
        print(f"\n🧪 Testing webhook: {dispatcher.url}")
        return dispatcher.test_connection()

    def _test_apify(self) -> bool:
        """Read the configured actor with the API token."""
        print("\n🔗 Testing Apify API connectivity...")
        return self.apify_client.test_connection(timeout=self.config.webhook.test_timeout)
