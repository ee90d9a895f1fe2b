# stablehand/core/worker/middleware.py
"""
Hooks wrapped around the execution of a single job.

A worker receives its middlewares at construction and composes them once into
a fixed chain; the first middleware is the outermost wrapper:

    RedisReconnect.around_perform(job, call_next)
      -> <next middleware>.around_perform(job, call_next)
        -> job.perform()

The chain is never modified while the worker runs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, Optional

from redis import Redis

from stablehand.core.engine.job import Job

if TYPE_CHECKING:
    from stablehand.core.worker.base import BaseWorker

Perform = Callable[[Job], Any]


class Middleware:
    """Base class; subclasses override one or both hooks."""

    def around_perform(self, job: Job, call_next: Perform) -> Any:
        return call_next(job)

    def after_fork(self, worker: BaseWorker) -> None:
        """Runs in a freshly forked child before its worker starts."""


def build_chain(middlewares: Sequence[Middleware], perform: Perform) -> Perform:
    chain = perform
    for middleware in reversed(middlewares):
        chain = _link(middleware, chain)
    return chain


def _link(middleware: Middleware, call_next: Perform) -> Perform:
    def run(job: Job) -> Any:
        return middleware.around_perform(job, call_next)

    return run


class RedisReconnect(Middleware):
    """Reconnect Redis clients before every job.

    Useful for connections the job's own code uses (caches, locks). By default
    the connections given at construction are reconnected; ``selector`` picks
    them per job instead.
    """

    def __init__(
        self,
        *connections: Redis,
        selector: Optional[Callable[[Job], Iterable[Redis]]] = None,
    ) -> None:
        self.connections = connections
        self.selector = selector

    def _connections_for(self, job: Job) -> Iterable[Redis]:
        if self.selector is None:
            return self.connections
        selected = self.selector(job)
        if isinstance(selected, Redis):
            return [selected]
        return selected

    def around_perform(self, job: Job, call_next: Perform) -> Any:
        for redis in self._connections_for(job):
            redis.connection_pool.disconnect()
        return call_next(job)

    def __repr__(self) -> str:
        return 'RedisReconnect'
