#!/usr/bin/env python3
"""
Run Monitor - polls runs to completion and delivers their data.

Each monitored run gets its own asyncio task:
1. Poll the run status (every ``check_interval`` seconds)
2. SUCCEEDED: fetch the dataset and deliver it (empty datasets included)
3. FAILED / ABORTED: send a failure notification
4. Attempt budget exhausted: send a timeout notification

Runs are isolated from each other; the only shared state is the registry.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from .dataset_fetcher import DatasetFetcher
from .exceptions import (
    DispatchError, ErrorRecovery, FetchError, MissingDatasetError,
    TerminalRunFailure, TransientPollError
)
from .models.payload import PayloadBuilder
from .models.run import MonitorOutcome, MonitorResult, RunHandle, RunInfo, RunStatus
from .run_poller import RunStatusPoller
from .run_registry import RunRegistry

logger = logging.getLogger(__name__)


class RunMonitor:
    """
    Orchestrates poll, fetch and dispatch for any number of runs.

    ``start_monitoring`` must be called from inside a running event loop;
    the loop for each run is scheduled as an independent task.
    """

    def __init__(
        self,
        poller: RunStatusPoller,
        fetcher: DatasetFetcher,
        dispatcher,
        payloads: PayloadBuilder,
        check_interval: float = 30.0,
        max_attempts: int = 120,
        registry: Optional[RunRegistry] = None,
        notify_on_delivery_failure: bool = True,
    ) -> None:
        """
        Initialize run monitor.

        Args:
            poller: Status poller
            fetcher: Dataset fetcher
            dispatcher: Webhook dispatcher (``deliver`` / ``notify``)
            payloads: Payload builder for this sender variant
            check_interval: Seconds between attempts
            max_attempts: Attempt budget per run
            registry: Store of active runs (a fresh one if omitted)
            notify_on_delivery_failure: Send an error notification when a
                data delivery fails
        """
        self.poller = poller
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.payloads = payloads
        self.check_interval = check_interval
        self.max_attempts = max_attempts
        self.registry = registry if registry is not None else RunRegistry()
        self.notify_on_delivery_failure = notify_on_delivery_failure

        self._tasks: Set[asyncio.Task] = set()
        self._task_by_run: Dict[str, asyncio.Task] = {}

    @property
    def max_minutes(self) -> float:
        return self.max_attempts * self.check_interval / 60

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start_monitoring(self, run_id: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Begin monitoring a run in the background.

        Returns:
            The run id; duplicates return the id of the existing handle
        """
        handle = RunHandle(run_id=run_id, metadata=dict(metadata or {}))
        registered = self.registry.add(handle)
        if registered is not handle:
            logger.warning(f"[{run_id}] Run is already being monitored")
            return registered.run_id

        logger.info(f"[{run_id}] Starting monitoring (up to {self.max_attempts} checks, "
                    f"every {self.check_interval:g}s)")

        task = asyncio.get_running_loop().create_task(self._run_loop(handle), name=f"monitor-{run_id}")
        self._tasks.add(task)
        self._task_by_run[run_id] = task
        task.add_done_callback(lambda done: self._forget_task(run_id, done))
        return run_id

    def _forget_task(self, run_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._task_by_run.get(run_id) is task:
            del self._task_by_run[run_id]

    def stop_monitoring(self, run_id: str) -> bool:
        """Stop monitoring a run; False if it was not being monitored."""
        handle = self.registry.remove(run_id)
        if handle is None:
            return False
        handle.stop()
        logger.info(f"[{run_id}] Monitoring stopped manually")
        return True

    def stop_all(self) -> List[str]:
        """Stop every active run and return the stopped ids."""
        handles = self.registry.clear()
        for handle in handles:
            handle.stop()
        run_ids = [handle.run_id for handle in handles]
        logger.info(f"Stopped monitoring {len(run_ids)} runs: {', '.join(run_ids)}")
        return run_ids

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of active runs."""
        runs = [handle.snapshot() for handle in self.registry.handles()]
        return {
            'activeRuns': len(runs),
            'runs': runs,
        }

    def is_monitoring(self, run_id: str) -> bool:
        return run_id in self.registry

    async def wait(self, run_id: str) -> Optional[MonitorResult]:
        """Wait for the loop of ``run_id``; None if no loop is running for it."""
        task = self._task_by_run.get(run_id)
        if task is None:
            return None
        return await task

    async def wait_all(self) -> List[MonitorResult]:
        """Wait until every loop scheduled so far has finished."""
        results = []
        seen: Set[asyncio.Task] = set()
        while True:
            pending = [task for task in self._tasks if task not in seen]
            if not pending:
                return results
            seen.update(pending)
            results.extend(await asyncio.gather(*pending))

    async def monitor_run(self, run_id: str, metadata: Optional[Dict[str, Any]] = None) -> MonitorResult:
        """Start monitoring a run and wait for its result."""
        self.start_monitoring(run_id, metadata)
        return await self.wait(run_id)

    async def close(self) -> None:
        """Stop all runs and wait for their loops to exit."""
        self.stop_all()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run_loop(self, handle: RunHandle) -> MonitorResult:
        run_id = handle.run_id
        try:
            result = await self._monitor(handle)
        except Exception as e:
            # One run's failure must not leak into the host or other runs
            logger.error(f"[{run_id}] Fatal monitoring error: {e}", exc_info=True)
            result = self._result(handle, MonitorOutcome.ERROR, error=ErrorRecovery.describe(e))
            await self._notify(self.payloads.error(run_id, result.error, handle.attempt_count))
        finally:
            self.registry.remove(run_id, handle)

        logger.info(f"[{run_id}] Monitoring finished: {result.outcome.value} "
                    f"after {result.attempts} checks")
        return result

    async def _monitor(self, handle: RunHandle) -> MonitorResult:
        run_id = handle.run_id
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            if self._abandoned(handle):
                return self._stopped(handle)

            handle.attempt_count = attempt
            logger.info(f"[{run_id}] Check {attempt}/{self.max_attempts} - Checking run status...")

            try:
                run = await self.poller.poll(run_id)
            except TransientPollError as e:
                last_error = e.message
                if ErrorRecovery.is_retryable_error(e.__cause__ or e):
                    logger.warning(f"[{run_id}] Error during monitoring attempt {attempt}: {e}")
                else:
                    # Still counts against the budget; a 4xx rarely clears up on its own
                    logger.error(f"[{run_id}] Error during monitoring attempt {attempt}: {e}")
            else:
                last_error = None
                if self._abandoned(handle):
                    return self._stopped(handle)

                handle.record_status(run.status)
                logger.info(f"[{run_id}] Run status: {run.raw_status}")

                if run.status is RunStatus.SUCCEEDED:
                    logger.info(f"[{run_id}] Run completed successfully! Sending data to webhook...")
                    return await self._handle_succeeded(handle, run)

                if run.status in (RunStatus.FAILED, RunStatus.ABORTED):
                    return await self._handle_failed(handle, run)

                logger.info(f"[{run_id}] Run still in progress ({run.raw_status})")

            if attempt < self.max_attempts:
                logger.debug(f"[{run_id}] Next check in {self.check_interval:g}s")
                if await self._sleep(handle):
                    return self._stopped(handle)

        return await self._handle_timeout(handle, last_error)

    async def _sleep(self, handle: RunHandle) -> bool:
        """Wait one interval; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(handle.stop_event.wait(), timeout=self.check_interval)
            return True
        except asyncio.TimeoutError:
            return self._abandoned(handle)

    def _abandoned(self, handle: RunHandle) -> bool:
        return handle.stopped or not self.registry.contains(handle)

    # ------------------------------------------------------------------
    # Outcome handlers
    # ------------------------------------------------------------------

    async def _handle_succeeded(self, handle: RunHandle, run: RunInfo) -> MonitorResult:
        run_id = handle.run_id
        attempts = handle.attempt_count

        try:
            records = await self.fetcher.fetch_for_run(run)
        except (MissingDatasetError, FetchError) as e:
            logger.error(f"[{run_id}] Error handling successful run: {e}")
            await self._notify(self.payloads.error(run_id, e.message, attempts, run))
            return self._result(handle, MonitorOutcome.FETCH_FAILED, error=e.message)

        logger.info(f"[{run_id}] Retrieved {len(records)} items from dataset")
        if not records:
            logger.warning(f"[{run_id}] Scraping completed but no data found in dataset")

        payload = self.payloads.success(run, records, attempts)
        try:
            await self.dispatcher.deliver(payload)
        except DispatchError as e:
            logger.error(f"[{run_id}] Error delivering run data: {e}")
            if self.notify_on_delivery_failure:
                await self._notify(self.payloads.error(run_id, e.message, attempts, run))
            return self._result(handle, MonitorOutcome.DELIVERY_FAILED,
                                total_records=len(records), error=e.message)

        if records:
            logger.info(f"[{run_id}] SUCCESS: {len(records)} records sent to webhook")
            outcome = MonitorOutcome.DELIVERED
        else:
            outcome = MonitorOutcome.DELIVERED_EMPTY
        return self._result(handle, outcome, total_records=len(records))

    async def _handle_failed(self, handle: RunHandle, run: RunInfo) -> MonitorResult:
        failure = TerminalRunFailure(handle.run_id, run.raw_status or run.status.value)
        logger.error(f"[{handle.run_id}] {failure.message}")

        await self._notify(self.payloads.run_failed(run, handle.attempt_count))

        outcome = MonitorOutcome.RUN_ABORTED if run.status is RunStatus.ABORTED else MonitorOutcome.RUN_FAILED
        return self._result(handle, outcome, error=failure.message)

    async def _handle_timeout(self, handle: RunHandle, last_error: Optional[str]) -> MonitorResult:
        previous_status = handle.last_known_status
        handle.record_status(RunStatus.TIMED_OUT)
        logger.warning(f"[{handle.run_id}] Monitoring timeout after {self.max_minutes:g} minutes")

        payload = self.payloads.timeout(
            handle.run_id,
            handle.attempt_count,
            self.check_interval,
            last_status=previous_status.value,
            last_error=last_error
        )
        await self._notify(payload)
        return self._result(handle, MonitorOutcome.TIMED_OUT, error=payload.metadata['error'])

    async def _notify(self, payload) -> bool:
        """Best-effort notification; a failure here never changes the outcome."""
        try:
            return await self.dispatcher.notify(payload)
        except Exception as e:
            logger.error(f"[{payload.run_id}] Failed to send webhook notification: {e}")
            return False

    def _stopped(self, handle: RunHandle) -> MonitorResult:
        logger.info(f"[{handle.run_id}] Monitoring abandoned after stop request")
        return self._result(handle, MonitorOutcome.STOPPED)

    def _result(self, handle: RunHandle, outcome: MonitorOutcome,
                total_records: int = 0, error: Optional[str] = None) -> MonitorResult:
        return MonitorResult(
            run_id=handle.run_id,
            outcome=outcome,
            attempts=handle.attempt_count,
            status=handle.last_known_status,
            total_records=total_records,
            error=error
        )
