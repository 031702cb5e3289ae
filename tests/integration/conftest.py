import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Also add the project root to handle absolute imports
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.config import ApifyConfig, Config, MonitorConfig, ServerConfig, WebhookConfig, reset_config  # noqa: E402
from core.container import reset_container  # noqa: E402
from core.exceptions import DispatchError, FetchError, TransientPollError  # noqa: E402
from core.models.payload import PayloadBuilder, WebhookPayload  # noqa: E402
from core.models.run import RunInfo, RunStatus  # noqa: E402
from core.monitor import RunMonitor  # noqa: E402

WEBHOOK_URL = "https://hooks.example.com/run-data"

Step = Union[str, Exception]


def make_run(run_id: str, raw_status: str, dataset_id: Optional[str] = "ds1") -> RunInfo:
    status = RunStatus.from_provider(raw_status) or RunStatus.RUNNING
    return RunInfo(run_id=run_id, status=status, raw_status=raw_status, dataset_id=dataset_id)


class FakePoller:
    """
    Answers polls from a script of provider statuses or exceptions.

    The last step repeats once the script is exhausted.
    """

    def __init__(self, steps: List[Step], dataset_id: Optional[str] = "ds1",
                 on_poll: Optional[Callable[[str, int], Any]] = None) -> None:
        self.steps = list(steps)
        self.dataset_id = dataset_id
        self.on_poll = on_poll
        self.calls: List[str] = []

    async def poll(self, run_id: str) -> RunInfo:
        self.calls.append(run_id)
        if self.on_poll is not None:
            await self.on_poll(run_id, len(self.calls))
        index = min(len(self.calls), len(self.steps)) - 1
        step = self.steps[index]
        if isinstance(step, Exception):
            raise TransientPollError(run_id, step)
        return make_run(run_id, step, self.dataset_id)


class ScriptedPollers:
    """One FakePoller script per run id, behind a single poller interface."""

    def __init__(self, scripts: Dict[str, List[Step]]) -> None:
        self.pollers = {run_id: FakePoller(steps) for run_id, steps in scripts.items()}

    async def poll(self, run_id: str) -> RunInfo:
        return await self.pollers[run_id].poll(run_id)


class FakeFetcher:
    def __init__(self, records: Optional[List[Dict[str, Any]]] = None,
                 error: Optional[Exception] = None) -> None:
        self.records = records if records is not None else [{"name": "Ada"}, {"name": "Grace"}]
        self.error = error
        self.calls: List[str] = []

    async def fetch_for_run(self, run: RunInfo) -> List[Dict[str, Any]]:
        from core.exceptions import MissingDatasetError

        self.calls.append(run.run_id)
        if not run.dataset_id:
            raise MissingDatasetError(run.run_id)
        if self.error is not None:
            raise FetchError(run.dataset_id, self.error)
        return list(self.records)


class FakeDispatcher:
    def __init__(self, fail_delivery: bool = False) -> None:
        self.fail_delivery = fail_delivery
        self.delivered: List[WebhookPayload] = []
        self.notifications: List[WebhookPayload] = []

    @property
    def sent(self) -> List[WebhookPayload]:
        return self.delivered + self.notifications

    async def deliver(self, payload: WebhookPayload) -> bool:
        if self.fail_delivery:
            raise DispatchError(WEBHOOK_URL, ConnectionError("connection refused"), run_id=payload.run_id)
        self.delivered.append(payload)
        return True

    async def notify(self, payload: WebhookPayload) -> bool:
        self.notifications.append(payload)
        return True


@pytest.fixture
def relay_config() -> Config:
    return Config(
        apify=ApifyConfig(token="test-token", base_url="http://apify.test/v2"),
        webhook=WebhookConfig(url=WEBHOOK_URL),
        monitor=MonitorConfig(check_interval=0.01, max_attempts=5, log_file=None),
        server=ServerConfig(),
    )


@pytest.fixture
def monitor_factory():
    def _factory(poller, fetcher: Optional[FakeFetcher] = None,
                 dispatcher: Optional[FakeDispatcher] = None,
                 max_attempts: int = 5, check_interval: float = 0.01, **kwargs) -> RunMonitor:
        return RunMonitor(
            poller=poller,
            fetcher=fetcher or FakeFetcher(),
            dispatcher=dispatcher or FakeDispatcher(),
            payloads=PayloadBuilder(sender="test-monitor", webhook_url=WEBHOOK_URL),
            check_interval=check_interval,
            max_attempts=max_attempts,
            **kwargs,
        )

    return _factory


@pytest.fixture(autouse=True)
def fresh_globals():
    """Drop the global container and config manager between tests."""
    yield
    reset_container()
    reset_config()
