# stablehand/core/worker/state.py
from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from stablehand.core.engine.job import Job


class CurrentJob:
    """
    The job a worker is executing right now, or None.

    Written by the reservation loop, read by the lock-loss listener thread;
    both go through the same lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._job: Optional[Job] = None

    def set(self, job: Optional[Job]) -> None:
        with self._lock:
            self._job = job

    def clear(self) -> None:
        self.set(None)

    def get(self) -> Optional[Job]:
        with self._lock:
            return self._job

    @contextmanager
    def with_job(self) -> Iterator[Optional[Job]]:
        """Hold the lock while the caller inspects the current job."""
        with self._lock:
            yield self._job
