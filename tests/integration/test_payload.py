from datetime import datetime, timezone

import pytest

from core.models.payload import PayloadBuilder, payload_from_dict
from core.models.run import RunHandle, RunInfo, RunStatus

WEBHOOK_URL = "https://hooks.example.com/run-data"


@pytest.fixture
def builder() -> PayloadBuilder:
    return PayloadBuilder(sender="background-monitor", webhook_url=WEBHOOK_URL)


@pytest.fixture
def succeeded_run() -> RunInfo:
    return RunInfo.from_api("run1", {
        "id": "run1",
        "status": "SUCCEEDED",
        "defaultDatasetId": "ds1",
        "startedAt": "2024-05-01T10:00:00.000Z",
        "finishedAt": "2024-05-01T10:04:30.000Z",
        "stats": {"computeUnits": 0.2},
    }, RunStatus.SUCCEEDED)


def test_provider_status_mapping():
    assert RunStatus.from_provider("READY") is RunStatus.PENDING
    assert RunStatus.from_provider("running") is RunStatus.RUNNING
    assert RunStatus.from_provider("TIMING-OUT") is RunStatus.RUNNING
    assert RunStatus.from_provider("TIMED-OUT") is RunStatus.FAILED
    assert RunStatus.from_provider("ABORTED") is RunStatus.ABORTED
    assert RunStatus.from_provider("SOMETHING-NEW") is None
    assert RunStatus.SUCCEEDED.is_terminal
    assert not RunStatus.RUNNING.is_terminal


def test_run_info_parses_timestamps(succeeded_run):
    assert succeeded_run.dataset_id == "ds1"
    assert succeeded_run.started_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert succeeded_run.stats == {"computeUnits": 0.2}


def test_handle_status_never_leaves_terminal_state():
    handle = RunHandle(run_id="run1")
    handle.record_status(RunStatus.RUNNING)
    handle.record_status(RunStatus.FAILED)
    handle.record_status(RunStatus.RUNNING)

    assert handle.last_known_status is RunStatus.FAILED


def test_success_payload_counts_records(builder, succeeded_run):
    payload = builder.success(succeeded_run, [{"name": "Ada"}, {"name": "Grace"}], attempts=4)
    body = payload.to_dict()

    assert body["data"] == [{"name": "Ada"}, {"name": "Grace"}]
    metadata = body["metadata"]
    assert metadata["success"] is True
    assert metadata["totalRecords"] == 2
    assert metadata["datasetId"] == "ds1"
    assert metadata["monitoringAttempts"] == 4
    assert metadata["automatedDelivery"] is True
    assert metadata["deliveredBy"] == "background-monitor"
    assert metadata["configuredWebhookUrl"] == WEBHOOK_URL
    assert metadata["runFinishedAt"].startswith("2024-05-01T10:04:30")
    assert metadata["timestamp"].endswith("Z")


def test_empty_success_payload_has_distinct_message(builder, succeeded_run):
    metadata = builder.success(succeeded_run, []).metadata

    assert metadata["success"] is True
    assert metadata["totalRecords"] == 0
    assert metadata["message"] == "Scraping completed but no data found"
    assert metadata["automatedDelivery"] is False
    assert "monitoringAttempts" not in metadata


def test_payload_is_immutable(builder, succeeded_run):
    payload = builder.success(succeeded_run, [{"name": "Ada"}])

    with pytest.raises(TypeError):
        payload.metadata["success"] = False
    with pytest.raises(AttributeError):
        payload.data = ()


def test_failure_and_timeout_payloads_share_the_shape(builder):
    failed = RunInfo(run_id="run1", status=RunStatus.FAILED, raw_status="FAILED")

    failure = builder.run_failed(failed, attempts=3).to_dict()
    timeout = builder.timeout("run1", attempts=120, interval_seconds=30,
                              last_status="RUNNING", last_error="GET failed").to_dict()

    for body in (failure, timeout):
        assert set(body) == {"data", "metadata"}
        assert body["data"] == []
        assert body["metadata"]["success"] is False
        assert body["metadata"]["runId"] == "run1"

    assert failure["metadata"]["error"] == "Scraper run failed"
    assert timeout["metadata"]["error"] == "Monitoring timeout after 60 minutes"
    assert timeout["metadata"]["timeout"] is True
    assert timeout["metadata"]["lastError"] == "GET failed"


def test_payload_from_dict_validates_shape():
    payload = payload_from_dict({"data": [{"a": 1}], "metadata": {"success": True, "runId": "r1"}})
    assert payload.run_id == "r1"
    assert payload.success is True

    with pytest.raises(ValueError):
        payload_from_dict([])
    with pytest.raises(ValueError):
        payload_from_dict({"data": "nope", "metadata": {}})
    with pytest.raises(ValueError):
        payload_from_dict({"data": []})
