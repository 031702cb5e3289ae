#!/usr/bin/env python3
"""
Webhook payload model.

Every delivery (data, empty result, failed run, monitoring timeout) uses
the same ``{"data": [...], "metadata": {...}}`` shape; consumers tell them
apart with ``metadata.success`` and the diagnostic fields.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .run import RunInfo


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class WebhookPayload:
    """An immutable webhook body."""
    data: tuple
    metadata: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, 'data', tuple(self.data))
        object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))

    @property
    def success(self) -> bool:
        return bool(self.metadata.get('success'))

    @property
    def run_id(self) -> Optional[str]:
        return self.metadata.get('runId')

    @property
    def total_records(self) -> int:
        return int(self.metadata.get('totalRecords', 0))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON body posted to the webhook."""
        return {
            'data': list(self.data),
            'metadata': dict(self.metadata),
        }


@dataclass
class PayloadBuilder:
    """
    Builds payloads for one sender variant.

    Args:
        sender: Variant label stored in ``metadata.deliveredBy``
        webhook_url: Configured webhook URL echoed into the metadata
    """
    sender: str
    webhook_url: str
    extra_metadata: Dict[str, Any] = field(default_factory=dict)

    def _base(self, run_id: str, success: bool, message: str, attempts: Optional[int]) -> Dict[str, Any]:
        metadata = {
            'success': success,
            'message': message,
            'totalRecords': 0,
            'runId': run_id,
            'timestamp': _utc_now_iso(),
            'configuredWebhookUrl': self.webhook_url,
            'automatedDelivery': attempts is not None,
            'deliveredBy': self.sender,
        }
        if attempts is not None:
            metadata['monitoringAttempts'] = attempts
        metadata.update(self.extra_metadata)
        return metadata

    def success(self, run: RunInfo, records: Sequence[Dict[str, Any]],
                attempts: Optional[int] = None) -> WebhookPayload:
        """Payload carrying the dataset; an empty dataset is still a success."""
        records = list(records)
        message = ('Data automatically sent after run completion' if records
                   else 'Scraping completed but no data found')
        metadata = self._base(run.run_id, True, message, attempts)
        metadata.update({
            'totalRecords': len(records),
            'datasetId': run.dataset_id,
            'retrievedAt': _utc_now_iso(),
            'runStatus': run.raw_status or run.status.value,
            'runStartedAt': _iso(run.started_at),
            'runFinishedAt': _iso(run.finished_at),
        })
        return WebhookPayload(data=records, metadata=metadata)

    def run_failed(self, run: RunInfo, attempts: Optional[int] = None) -> WebhookPayload:
        """Payload for a run the provider reported as FAILED or ABORTED."""
        status = run.raw_status or run.status.value
        metadata = self._base(run.run_id, False, 'Run monitoring detected failure', attempts)
        metadata.update({
            'error': f"Scraper run {status.lower()}",
            'runStatus': status,
            'runStartedAt': _iso(run.started_at),
            'runFinishedAt': _iso(run.finished_at),
            'runStats': dict(run.stats),
        })
        return WebhookPayload(data=[], metadata=metadata)

    def timeout(self, run_id: str, attempts: int, interval_seconds: float,
                last_status: Optional[str] = None, last_error: Optional[str] = None) -> WebhookPayload:
        """Payload sent when the attempt budget runs out."""
        minutes = attempts * interval_seconds / 60
        error = f"Monitoring timeout after {minutes:g} minutes"
        metadata = self._base(run_id, False, error, attempts)
        metadata.update({
            'error': error,
            'timeout': True,
            'runStatus': last_status,
        })
        if last_error:
            metadata['lastError'] = last_error
        return WebhookPayload(data=[], metadata=metadata)

    def error(self, run_id: str, error: str, attempts: Optional[int] = None,
              run: Optional[RunInfo] = None) -> WebhookPayload:
        """Payload for a processing error (missing dataset, fetch or delivery failure)."""
        metadata = self._base(run_id, False, f"Error processing successful run: {error}", attempts)
        metadata['error'] = error
        if run is not None:
            metadata.update({
                'datasetId': run.dataset_id,
                'runStatus': run.raw_status or run.status.value,
                'runStartedAt': _iso(run.started_at),
                'runFinishedAt': _iso(run.finished_at),
            })
        return WebhookPayload(data=[], metadata=metadata)

    def test(self) -> WebhookPayload:
        """Connectivity test body."""
        metadata = {
            'success': True,
            'test': True,
            'message': 'Test from webhook relay',
            'totalRecords': 0,
            'timestamp': _utc_now_iso(),
            'deliveredBy': self.sender,
        }
        return WebhookPayload(data=[], metadata=metadata)


def payload_from_dict(body: Any) -> WebhookPayload:
    """Parse a received webhook body; raises ValueError when malformed."""
    if not isinstance(body, dict):
        raise ValueError("Webhook body must be a JSON object")
    data = body.get('data', [])
    metadata = body.get('metadata')
    if not isinstance(data, list):
        raise ValueError("'data' must be a list")
    if not isinstance(metadata, dict):
        raise ValueError("'metadata' must be an object")
    return WebhookPayload(data=data, metadata=metadata)


def records_of(payload: WebhookPayload) -> List[Dict[str, Any]]:
    return [record for record in payload.data if isinstance(record, dict)]
