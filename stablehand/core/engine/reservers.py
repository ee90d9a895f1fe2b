# stablehand/core/engine/reservers.py
"""
Reservation strategies: decide which queue a worker pops from next.

A reserver exposes ``queues`` (so the worker can find the clients it talks
to), ``description`` (shown in the procline) and ``reserve()``, which returns
a job or None.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional, Protocol

from stablehand.core.engine.job import Job
from stablehand.core.engine.queue import Queue


class Reserver(Protocol):
    queues: Sequence[Queue]

    @property
    def description(self) -> str: ...

    def reserve(self) -> Optional[Job]: ...


def _single(popped: Job | list[Job] | None) -> Optional[Job]:
    if isinstance(popped, list):
        return popped[0] if popped else None
    return popped


class OrderedReserver:
    """Always drain the first queue before looking at the next."""

    def __init__(self, queues: Sequence[Queue]) -> None:
        self.queues = list(queues)

    @property
    def description(self) -> str:
        names = ', '.join(q.name for q in self.queues)
        return f'{names} (ordered)'

    def reserve(self) -> Optional[Job]:
        for queue in self.queues:
            job = _single(queue.pop())
            if job is not None:
                return job
        return None


class RoundRobinReserver:
    """Start each reservation one queue further along than the last."""

    def __init__(self, queues: Sequence[Queue]) -> None:
        self.queues = list(queues)
        self._last_index = len(self.queues) - 1

    @property
    def description(self) -> str:
        names = ', '.join(q.name for q in self.queues)
        return f'{names} (round robin)'

    def _next_queue(self) -> Queue:
        self._last_index = (self._last_index + 1) % len(self.queues)
        return self.queues[self._last_index]

    def reserve(self) -> Optional[Job]:
        for _ in range(len(self.queues)):
            job = _single(self._next_queue().pop())
            if job is not None:
                return job
        return None


RESERVERS: dict[str, type[OrderedReserver] | type[RoundRobinReserver]] = {
    'ordered': OrderedReserver,
    'round-robin': RoundRobinReserver,
}
