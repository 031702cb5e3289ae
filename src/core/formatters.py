#!/usr/bin/env python3
"""
Formatting utilities for CLI output.

Renders monitor snapshots, monitoring results and receiver summaries as
plain text. Timestamps are shown in the configured display timezone.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytz
from dateutil import parser as date_parser

from core.models.run import MonitorOutcome, MonitorResult

OUTCOME_LABELS = {
    MonitorOutcome.DELIVERED: "✅ Data delivered",
    MonitorOutcome.DELIVERED_EMPTY: "✅ Run succeeded, empty dataset delivered",
    MonitorOutcome.RUN_FAILED: "❌ Run failed",
    MonitorOutcome.RUN_ABORTED: "❌ Run aborted",
    MonitorOutcome.TIMED_OUT: "⏰ Monitoring timed out",
    MonitorOutcome.FETCH_FAILED: "❌ Could not retrieve dataset",
    MonitorOutcome.DELIVERY_FAILED: "❌ Webhook delivery failed",
    MonitorOutcome.STOPPED: "⏹️  Monitoring stopped",
    MonitorOutcome.ERROR: "❌ Monitoring error",
}


def get_timezone(name: str):
    """Resolve a timezone name, falling back to UTC when unknown."""
    try:
        return pytz.timezone(name or 'UTC')
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def format_timestamp(value: Any, tz_name: str = 'UTC') -> str:
    """Format a datetime or ISO string in the display timezone."""
    if not value:
        return "-"
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            return str(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(get_timezone(tz_name)).strftime("%Y-%m-%d %H:%M:%S %Z")


def format_result(result: MonitorResult) -> str:
    """One-line summary of a finished monitoring loop."""
    label = OUTCOME_LABELS.get(result.outcome, result.outcome.value)
    line = f"{label} [{result.run_id}] after {result.attempts} checks"
    if result.total_records:
        line += f" ({result.total_records} records)"
    if result.error and not result.outcome.is_success:
        line += f" - {result.error}"
    return line


def format_monitor_status(status: Dict[str, Any], tz_name: str = 'UTC') -> str:
    """Render the server's ``/monitor-status`` answer."""
    monitors: List[Dict[str, Any]] = status.get('monitors', status.get('runs', []))
    count = status.get('activeMonitors', status.get('activeRuns', len(monitors)))

    lines = [f"\n=== Active Monitors: {count} ==="]
    if not monitors:
        lines.append("No runs are being monitored")
    for monitor in monitors:
        lines.append(
            f"  • {monitor.get('runId')}: {monitor.get('status')} - "
            f"{monitor.get('attempts', 0)} checks, "
            f"{monitor.get('elapsedMinutes', 0)} min "
            f"(started {format_timestamp(monitor.get('startTime'), tz_name)})"
        )
    return "\n".join(lines)
