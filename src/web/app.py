#!/usr/bin/env python3
"""
Relay HTTP server.

aiohttp application that owns one RunMonitor and exposes control endpoints
for it, plus a reference webhook receiver that stores what it is sent.

Endpoints:
    POST /start-monitor       {"runId": "..."}
    GET  /monitor-status
    POST /stop-monitor        {"runId": "..."}
    POST /stop-all
    GET  /health
    POST /webhook/run-data    {"data": [...], "metadata": {...}}
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from aiohttp import web

from core.data_manager import DataManager, summarize_records
from core.exceptions import InvalidRunIdError
from core.models.payload import payload_from_dict, records_of
from core.monitor import RunMonitor
from core.security import validate_run_id

logger = logging.getLogger(__name__)

MONITOR_KEY = web.AppKey('monitor', RunMonitor)
DATA_MANAGER_KEY = web.AppKey('data_manager', DataManager)
STARTED_AT_KEY = web.AppKey('started_at', float)
CLEANUP_KEY = web.AppKey('cleanup', list)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _read_json(request: web.Request) -> Tuple[Optional[Any], Optional[web.Response]]:
    """Parse the request body; returns (body, None) or (None, 400 response)."""
    try:
        return await request.json(), None
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, web.json_response(
            {'success': False, 'error': 'Request body must be valid JSON'}, status=400
        )


def _run_id_from(body: Any) -> Tuple[Optional[str], Optional[web.Response]]:
    run_id = body.get('runId') if isinstance(body, dict) else None
    if not run_id:
        return None, web.json_response({'success': False, 'error': 'runId is required'}, status=400)
    try:
        return validate_run_id(run_id), None
    except InvalidRunIdError as e:
        return None, web.json_response({'success': False, 'error': e.message}, status=400)


# ----------------------------------------------------------------------
# Monitor control
# ----------------------------------------------------------------------

async def start_monitor(request: web.Request) -> web.Response:
    body, error = await _read_json(request)
    if error:
        return error
    run_id, error = _run_id_from(body)
    if error:
        return error

    monitor = request.app[MONITOR_KEY]
    if monitor.is_monitoring(run_id):
        return web.json_response({
            'success': True,
            'message': f"Monitor already running for run {run_id}",
            'runId': run_id,
        })

    monitor.start_monitoring(run_id, metadata={'source': 'http'})
    return web.json_response({
        'success': True,
        'message': f"Started monitoring run {run_id} (up to {monitor.max_minutes:g} minutes)",
        'runId': run_id,
    })


async def monitor_status(request: web.Request) -> web.Response:
    status = request.app[MONITOR_KEY].get_status()
    return web.json_response({
        'activeMonitors': status['activeRuns'],
        'monitors': status['runs'],
    })


async def stop_monitor(request: web.Request) -> web.Response:
    body, error = await _read_json(request)
    if error:
        return error
    run_id, error = _run_id_from(body)
    if error:
        return error

    if not request.app[MONITOR_KEY].stop_monitoring(run_id):
        return web.json_response(
            {'success': False, 'error': f"No active monitor for run {run_id}"}, status=404
        )
    return web.json_response({'success': True, 'message': f"Stopped monitoring run {run_id}", 'runId': run_id})


async def stop_all(request: web.Request) -> web.Response:
    stopped = request.app[MONITOR_KEY].stop_all()
    return web.json_response({'success': True, 'stopped': stopped})


async def health(request: web.Request) -> web.Response:
    return web.json_response({
        'status': 'healthy',
        'activeMonitors': len(request.app[MONITOR_KEY].registry),
        'uptime': round(time.monotonic() - request.app[STARTED_AT_KEY], 3),
        'timestamp': _now_iso(),
    })


# ----------------------------------------------------------------------
# Reference webhook receiver
# ----------------------------------------------------------------------

async def receive_run_data(request: web.Request) -> web.Response:
    body, error = await _read_json(request)
    if error:
        return error
    try:
        payload = payload_from_dict(body)
    except ValueError as e:
        return web.json_response({'success': False, 'error': str(e)}, status=400)

    logger.info(f"Webhook received for run {payload.run_id}: success={payload.success}, "
                f"{len(payload.data)} records")
    data_manager = request.app[DATA_MANAGER_KEY]

    try:
        if payload.success:
            summary = summarize_records(records_of(payload))
            logger.info(f"Found {summary['verifiedEmails']} verified emails, "
                        f"{summary['withPhone']} phone numbers")
            logger.debug(f"Company distribution: {summary['companies']}")
            data_manager.save_payload(payload)
            message = 'Data received and processed successfully'
        else:
            logger.warning(f"Scraping failed for run {payload.run_id}: {payload.metadata.get('error')}")
            data_manager.log_error(dict(payload.metadata))
            message = 'Error notification received'
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Webhook processing error: {e}", exc_info=True)
        return web.json_response(
            {'success': False, 'error': 'Failed to process webhook data', 'timestamp': _now_iso()},
            status=500
        )

    return web.json_response({
        'success': True,
        'message': message,
        'recordsReceived': len(payload.data),
        'timestamp': _now_iso(),
    })


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------

async def _on_cleanup(app: web.Application) -> None:
    monitor = app[MONITOR_KEY]
    active = len(monitor.registry)
    if active:
        logger.info(f"Shutting down: stopping {active} active monitors")
    await monitor.close()
    for close in app[CLEANUP_KEY]:
        await close()


def create_app(monitor: RunMonitor, data_manager: Optional[DataManager] = None,
               cleanup: Optional[list] = None) -> web.Application:
    """
    Build the relay web application.

    Args:
        monitor: Monitor owning every loop started through this server
        data_manager: Receiver persistence (defaults to ``./data`` and ``./logs``)
        cleanup: Extra async callables awaited on shutdown (e.g. closing the HTTP client)
    """
    app = web.Application(client_max_size=50 * 1024 ** 2)
    app[MONITOR_KEY] = monitor
    app[DATA_MANAGER_KEY] = data_manager or DataManager()
    app[STARTED_AT_KEY] = time.monotonic()
    app[CLEANUP_KEY] = list(cleanup or [])

    app.router.add_post('/start-monitor', start_monitor)
    app.router.add_get('/monitor-status', monitor_status)
    app.router.add_post('/stop-monitor', stop_monitor)
    app.router.add_post('/stop-all', stop_all)
    app.router.add_get('/health', health)
    app.router.add_post('/webhook/run-data', receive_run_data)

    app.on_cleanup.append(_on_cleanup)
    return app


def describe_routes(base_url: str) -> Dict[str, str]:
    """Endpoint URLs printed when the server starts."""
    return {
        'Start monitoring': f"POST {base_url}/start-monitor",
        'Monitor status': f"GET  {base_url}/monitor-status",
        'Stop monitoring': f"POST {base_url}/stop-monitor",
        'Stop all': f"POST {base_url}/stop-all",
        'Health check': f"GET  {base_url}/health",
        'Webhook receiver': f"POST {base_url}/webhook/run-data",
    }
