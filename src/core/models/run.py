#!/usr/bin/env python3
"""
Run data models.

Represents a provider run as reported by the status endpoint (RunInfo) and
the monitor's own bookkeeping for a run it is watching (RunHandle).
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from dateutil import parser as date_parser


class RunStatus(str, Enum):
    """Monitor-side view of a run's lifecycle."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_provider(cls, raw_status: str) -> Optional['RunStatus']:
        """Map a provider status string; None when the string is unknown."""
        return PROVIDER_STATUS_MAP.get((raw_status or '').strip().upper())


TERMINAL_STATUSES = frozenset({
    RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.ABORTED, RunStatus.TIMED_OUT
})

# Provider TIMED-OUT means the run itself hit its time limit, which is a
# failed run from the relay's point of view. Our TIMED_OUT is reserved for
# an exhausted attempt budget.
PROVIDER_STATUS_MAP = {
    'READY': RunStatus.PENDING,
    'RUNNING': RunStatus.RUNNING,
    'TIMING-OUT': RunStatus.RUNNING,
    'ABORTING': RunStatus.RUNNING,
    'SUCCEEDED': RunStatus.SUCCEEDED,
    'FAILED': RunStatus.FAILED,
    'TIMED-OUT': RunStatus.FAILED,
    'ABORTED': RunStatus.ABORTED,
}


def _parse_datetime_safe(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError, TypeError):
        return None


@dataclass
class RunInfo:
    """One status-endpoint answer for a run."""
    run_id: str
    status: RunStatus
    raw_status: str
    dataset_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stats: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, run_id: str, data: Dict[str, Any], status: RunStatus) -> 'RunInfo':
        """Create RunInfo from the ``data`` object of a run record."""
        stats = data.get('stats')
        return cls(
            run_id=data.get('id') or run_id,
            status=status,
            raw_status=str(data.get('status', '')),
            dataset_id=data.get('defaultDatasetId') or None,
            started_at=_parse_datetime_safe(data.get('startedAt')),
            finished_at=_parse_datetime_safe(data.get('finishedAt')),
            stats=stats if isinstance(stats, dict) else {}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'runId': self.run_id,
            'status': self.raw_status or self.status.value,
            'datasetId': self.dataset_id,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'finishedAt': self.finished_at.isoformat() if self.finished_at else None,
            'stats': self.stats,
        }


@dataclass
class RunHandle:
    """
    A run tracked by a RunMonitor.

    Mutated only by the loop that owns it. ``stop_event`` is the loop's
    cancellation token: setting it wakes a sleeping loop so it can exit
    before scheduling another attempt.
    """
    run_id: str
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempt_count: int = 0
    last_known_status: RunStatus = RunStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    def record_status(self, status: RunStatus) -> None:
        """Advance the last known status; terminal states are never left."""
        if self.last_known_status.is_terminal:
            return
        self.last_known_status = status

    def elapsed_minutes(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return round((now - self.start_time).total_seconds() / 60)

    def snapshot(self) -> Dict[str, Any]:
        return {
            'runId': self.run_id,
            'status': self.last_known_status.value,
            'attempts': self.attempt_count,
            'startTime': self.start_time.isoformat(),
            'elapsedMinutes': self.elapsed_minutes(),
        }


class MonitorOutcome(str, Enum):
    """How a monitoring loop ended."""
    DELIVERED = "delivered"
    DELIVERED_EMPTY = "delivered_empty"
    RUN_FAILED = "run_failed"
    RUN_ABORTED = "run_aborted"
    TIMED_OUT = "timed_out"
    FETCH_FAILED = "fetch_failed"
    DELIVERY_FAILED = "delivery_failed"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_success(self) -> bool:
        return self in (MonitorOutcome.DELIVERED, MonitorOutcome.DELIVERED_EMPTY, MonitorOutcome.STOPPED)


@dataclass
class MonitorResult:
    """Final result of one monitoring loop."""
    run_id: str
    outcome: MonitorOutcome
    attempts: int
    status: RunStatus
    total_records: int = 0
    error: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.outcome.is_success else 1
