#!/usr/bin/env python3
"""
Registry of runs being monitored.

Owned by one RunMonitor; several monitors (and several test cases) can
each hold their own registry.
"""

import logging
import threading
from typing import Dict, List, Optional

from .models.run import RunHandle

logger = logging.getLogger(__name__)


class RunRegistry:
    """Lock-guarded mapping of run id to RunHandle."""

    def __init__(self):
        self._handles: Dict[str, RunHandle] = {}
        self._lock = threading.Lock()

    def add(self, handle: RunHandle) -> RunHandle:
        """
        Register a handle unless the run id is already tracked.

        Returns:
            The handle now registered for the id (the existing one on duplicates)
        """
        with self._lock:
            existing = self._handles.get(handle.run_id)
            if existing is not None:
                return existing
            self._handles[handle.run_id] = handle
            return handle

    def contains(self, handle: RunHandle) -> bool:
        """True while this exact handle is still the registered one."""
        return self._handles.get(handle.run_id) is handle

    def remove(self, run_id: str, handle: Optional[RunHandle] = None) -> Optional[RunHandle]:
        """
        Remove a run id.

        Args:
            run_id: Id to remove
            handle: Only remove if this handle is the registered one

        Returns:
            The removed handle, or None if nothing was removed
        """
        with self._lock:
            current = self._handles.get(run_id)
            if current is None or (handle is not None and current is not handle):
                return None
            del self._handles[run_id]
            return current

    def clear(self) -> List[RunHandle]:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            return handles

    def handles(self) -> List[RunHandle]:
        with self._lock:
            return list(self._handles.values())

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._handles
