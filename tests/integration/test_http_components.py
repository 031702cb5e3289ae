import asyncio
from typing import Any, Dict, List
from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.config import ApifyConfig, WebhookConfig
from core.container import create_monitor
from core.dataset_fetcher import DatasetFetcher
from core.exceptions import (
    ApiConnectionError, ApiResponseError, DispatchError, ErrorRecovery, FetchError,
    NoDatasetError, TransientPollError,
)
from core.http_client import AsyncHttpClient
from core.models.payload import PayloadBuilder, WebhookPayload
from core.models.run import MonitorOutcome, RunStatus
from core.run_poller import RunStatusPoller
from integrations.webhook_dispatcher import SENDER_AGENT, WebhookDispatcher

from conftest import make_run


class FakeApify:
    """In-process stand-in for the run status, dataset and webhook endpoints."""

    def __init__(self, statuses: List[Any], items: Any = None, webhook_status: int = 200,
                 webhook_reply: bytes = b'{"ok": true}') -> None:
        self.statuses = list(statuses)
        self.items = items if items is not None else [{"name": "Ada", "email": "ada@example.com"}]
        self.webhook_status = webhook_status
        self.webhook_reply = webhook_reply
        self.status_requests: List[Dict[str, str]] = []
        self.dataset_requests: List[Dict[str, str]] = []
        self.webhook_bodies: List[Dict[str, Any]] = []
        self.webhook_agents: List[str] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/v2/actor-runs/{run_id}', self.run_status)
        app.router.add_get('/v2/datasets/{dataset_id}/items', self.dataset_items)
        app.router.add_post('/hook', self.webhook)
        return app

    async def run_status(self, request: web.Request) -> web.Response:
        self.status_requests.append(dict(request.query))
        index = min(len(self.status_requests), len(self.statuses)) - 1
        step = self.statuses[index]
        if isinstance(step, int):
            return web.Response(status=step, text="upstream error")
        if isinstance(step, bytes):
            return web.Response(body=step, content_type="application/json")
        if isinstance(step, dict):
            return web.json_response(step)
        return web.json_response({"data": {
            "id": request.match_info["run_id"],
            "status": step,
            "defaultDatasetId": "ds42",
            "startedAt": "2024-05-01T10:00:00.000Z",
            "finishedAt": "2024-05-01T10:05:00.000Z" if step == "SUCCEEDED" else None,
        }})

    async def dataset_items(self, request: web.Request) -> web.Response:
        self.dataset_requests.append(dict(request.query))
        if isinstance(self.items, bytes):
            return web.Response(body=self.items, content_type="application/json")
        return web.json_response(self.items)

    async def webhook(self, request: web.Request) -> web.Response:
        self.webhook_bodies.append(await request.json())
        self.webhook_agents.append(request.headers.get("User-Agent", ""))
        return web.Response(body=self.webhook_reply, status=self.webhook_status, content_type="application/json")


def run_against(fake: FakeApify, scenario):
    """Start the fake endpoints, run ``scenario(base_url, http)`` and clean up."""

    async def _main():
        server = TestServer(fake.app())
        await server.start_server()
        try:
            async with AsyncHttpClient(timeout=5) as http:
                return await scenario(str(server.make_url('')).rstrip('/'), http)
        finally:
            await server.close()

    return asyncio.run(_main())


def apify_config(base_url: str) -> ApifyConfig:
    return ApifyConfig(token="secret-token", base_url=f"{base_url}/v2", request_timeout=5)


def test_poller_parses_run_record_and_passes_token():
    fake = FakeApify(["SUCCEEDED"])

    async def scenario(base_url, http):
        return await RunStatusPoller(http, apify_config(base_url)).poll("run1")

    run = run_against(fake, scenario)

    assert run.status is RunStatus.SUCCEEDED
    assert run.dataset_id == "ds42"
    assert run.started_at.year == 2024
    assert fake.status_requests == [{"token": "secret-token"}]


def test_poller_wraps_http_errors_as_transient():
    fake = FakeApify([503])

    async def scenario(base_url, http):
        with pytest.raises(TransientPollError) as excinfo:
            await RunStatusPoller(http, apify_config(base_url)).poll("run1")
        return excinfo.value

    error = run_against(fake, scenario)

    assert "503" in error.message
    assert "secret-token" not in error.message


def test_retryable_errors_are_told_apart_from_client_errors():
    fake = FakeApify([404])

    async def scenario(base_url, http):
        with pytest.raises(TransientPollError) as excinfo:
            await RunStatusPoller(http, apify_config(base_url)).poll("run1")
        return excinfo.value

    error = run_against(fake, scenario)

    assert not ErrorRecovery.is_retryable_error(error.__cause__)
    assert ErrorRecovery.is_retryable_error(ApiResponseError('GET', 'http://x', 503))
    assert ErrorRecovery.is_retryable_error(ApiResponseError('GET', 'http://x', 429))
    assert ErrorRecovery.is_retryable_error(ApiConnectionError('GET', 'http://x', OSError("refused")))
    assert not ErrorRecovery.is_retryable_error(ValueError("bad"))


def test_poller_rejects_record_without_data():
    fake = FakeApify([{"error": {"type": "record-not-found"}}])

    async def scenario(base_url, http):
        with pytest.raises(TransientPollError):
            await RunStatusPoller(http, apify_config(base_url)).poll("run1")

    run_against(fake, scenario)


def test_poller_treats_unknown_status_as_running():
    fake = FakeApify(["WARMING-UP"])

    async def scenario(base_url, http):
        return await RunStatusPoller(http, apify_config(base_url)).poll("run1")

    run = run_against(fake, scenario)

    assert run.status is RunStatus.RUNNING
    assert run.raw_status == "WARMING-UP"


def test_fetcher_returns_items_in_json_format():
    items = [{"name": "Ada"}, {"name": "Grace"}]
    fake = FakeApify(["SUCCEEDED"], items=items)

    async def scenario(base_url, http):
        return await DatasetFetcher(http, apify_config(base_url)).fetch("ds42")

    assert run_against(fake, scenario) == items
    assert fake.dataset_requests == [{"token": "secret-token", "format": "json"}]


def test_fetcher_rejects_non_list_body():
    fake = FakeApify(["SUCCEEDED"], items={"unexpected": "object"})

    async def scenario(base_url, http):
        with pytest.raises(FetchError):
            await DatasetFetcher(http, apify_config(base_url)).fetch("ds42")

    run_against(fake, scenario)


def test_fetcher_requires_dataset_id():
    async def scenario():
        async with AsyncHttpClient() as http:
            fetcher = DatasetFetcher(http, ApifyConfig(token="t"))
            with pytest.raises(NoDatasetError):
                await fetcher.fetch_for_run(make_run("run1", "SUCCEEDED", dataset_id=None))

    asyncio.run(scenario())


def test_dispatcher_posts_payload_with_sender_agent():
    fake = FakeApify(["SUCCEEDED"])

    async def scenario(base_url, http):
        config = WebhookConfig(url=f"{base_url}/hook")
        payload = PayloadBuilder(sender="sender", webhook_url=config.url).success(
            make_run("run1", "SUCCEEDED"), [{"name": "Ada"}]
        )
        return await WebhookDispatcher(http, config, user_agent=SENDER_AGENT).deliver(payload)

    assert run_against(fake, scenario) is True
    body = fake.webhook_bodies[0]
    assert body["data"] == [{"name": "Ada"}]
    assert body["metadata"]["totalRecords"] == 1
    assert fake.webhook_agents == [SENDER_AGENT]


def test_dispatcher_deliver_raises_on_non_2xx():
    fake = FakeApify(["SUCCEEDED"], webhook_status=500)

    async def scenario(base_url, http):
        config = WebhookConfig(url=f"{base_url}/hook")
        payload = PayloadBuilder(sender="test", webhook_url=config.url).success(make_run("run1", "SUCCEEDED"), [])
        with pytest.raises(DispatchError):
            await WebhookDispatcher(http, config).deliver(payload)

    run_against(fake, scenario)


def test_dispatcher_notify_swallows_failures():
    fake = FakeApify(["FAILED"], webhook_status=502)

    async def scenario(base_url, http):
        config = WebhookConfig(url=f"{base_url}/hook")
        payload = PayloadBuilder(sender="test", webhook_url=config.url).run_failed(make_run("run1", "FAILED"))
        return await WebhookDispatcher(http, config).notify(payload)

    assert run_against(fake, scenario) is False
    assert fake.webhook_bodies[0]["metadata"]["success"] is False


def test_dispatcher_requires_url():
    with pytest.raises(ValueError):
        WebhookDispatcher(AsyncHttpClient(), WebhookConfig(url=""))


def test_monitor_end_to_end_against_fake_endpoints(relay_config):
    items = [{"name": "Ada"}, {"name": "Grace"}]
    fake = FakeApify(["READY", "RUNNING", "SUCCEEDED"], items=items)

    async def scenario(base_url, http):
        relay_config.apify = apify_config(base_url)
        relay_config.webhook = WebhookConfig(url=f"{base_url}/hook")
        monitor = create_monitor(relay_config, http, sender="auto-monitor", user_agent="Relay-Test/1.0")
        return await monitor.monitor_run("runE2E")

    result = run_against(fake, scenario)

    assert result.outcome is MonitorOutcome.DELIVERED
    assert result.attempts == 3
    assert len(fake.status_requests) == 3
    assert len(fake.webhook_bodies) == 1
    metadata = fake.webhook_bodies[0]["metadata"]
    assert metadata["totalRecords"] == 2
    assert metadata["datasetId"] == "ds42"
    assert metadata["deliveredBy"] == "auto-monitor"
    assert metadata["monitoringAttempts"] == 3
    assert fake.webhook_agents == ["Relay-Test/1.0"]


def test_http_client_decodes_bodies_without_crashing():
    fake = FakeApify([b'{"data": {"status": "\xff\xfe"}}'])

    async def scenario(base_url, http):
        url = f"{base_url}/v2/actor-runs/run1"
        response = await http.request('GET', url)
        with pytest.raises(ApiResponseError) as excinfo:
            await http.get_json(url)
        return response, excinfo.value

    response, error = run_against(fake, scenario)

    assert response.ok
    assert "\ufffd" in response.text
    assert "invalid JSON body" in error.message


def test_undecodable_status_body_is_retried_until_success(relay_config):
    fake = FakeApify([b'{"data": {"status": "\xff\xfe"}}', "RUNNING", "SUCCEEDED"])

    async def scenario(base_url, http):
        relay_config.apify = apify_config(base_url)
        relay_config.webhook = WebhookConfig(url=f"{base_url}/hook")
        monitor = create_monitor(relay_config, http, sender="auto-monitor", user_agent="Relay-Test/1.0")
        return await monitor.monitor_run("runUtf8")

    result = run_against(fake, scenario)

    assert result.outcome is MonitorOutcome.DELIVERED
    assert result.attempts == 3
    assert len(fake.status_requests) == 3
    assert len(fake.webhook_bodies) == 1
    assert fake.webhook_bodies[0]["metadata"]["success"] is True


def test_undecodable_dataset_reports_fetch_failure(relay_config):
    fake = FakeApify(["SUCCEEDED"], items=b'[{"name": "\xff"}]')

    async def scenario(base_url, http):
        relay_config.apify = apify_config(base_url)
        relay_config.webhook = WebhookConfig(url=f"{base_url}/hook")
        monitor = create_monitor(relay_config, http, sender="auto-monitor", user_agent="Relay-Test/1.0")
        return await monitor.monitor_run("runUtf8")

    result = run_against(fake, scenario)

    assert result.outcome is MonitorOutcome.FETCH_FAILED
    assert len(fake.webhook_bodies) == 1
    metadata = fake.webhook_bodies[0]["metadata"]
    assert metadata["success"] is False
    assert metadata["runId"] == "runUtf8"


def test_webhook_reply_that_is_not_utf8_still_counts_as_delivered(relay_config):
    fake = FakeApify(["SUCCEEDED"], webhook_reply=b'\xff\xfe accepted')

    async def scenario(base_url, http):
        relay_config.apify = apify_config(base_url)
        relay_config.webhook = WebhookConfig(url=f"{base_url}/hook")
        monitor = create_monitor(relay_config, http, sender="auto-monitor", user_agent="Relay-Test/1.0")
        return await monitor.monitor_run("runUtf8")

    result = run_against(fake, scenario)

    assert result.outcome is MonitorOutcome.DELIVERED
    assert result.total_records == 1
    assert len(fake.webhook_bodies) == 1


def test_deliver_serializes_payload_once():
    fake = FakeApify(["SUCCEEDED"])
    original = WebhookPayload.to_dict

    async def scenario(base_url, http):
        config = WebhookConfig(url=f"{base_url}/hook")
        payload = PayloadBuilder(sender="sender", webhook_url=config.url).success(
            make_run("run1", "SUCCEEDED"), [{"name": "Ada"}, {"name": "Grace"}]
        )
        with patch.object(WebhookPayload, 'to_dict', autospec=True, side_effect=original) as to_dict:
            delivered = await WebhookDispatcher(http, config).deliver(payload)
        return delivered, to_dict.call_count

    delivered, serializations = run_against(fake, scenario)

    assert delivered is True
    assert serializations == 1
    assert fake.webhook_bodies[0]["metadata"]["totalRecords"] == 2
