# stablehand/core/engine/job.py
from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Any, Optional

from stablehand.core.engine.errors import (
    CantCompleteError,
    CantFailError,
    JobLockLost,
    ScriptRuntimeError,
)
from stablehand.core.utils.imports import resolve_object

if TYPE_CHECKING:
    from stablehand.core.engine.client import Client


def _load_data(raw: Any) -> dict[str, Any]:
    if raw is None or raw == '':
        return {}
    if isinstance(raw, (str, bytes)):
        return json.loads(raw)
    return dict(raw)


class Job:
    """
    A job reserved from the engine.

    The worker never creates jobs; it receives them from a reserver and reports
    back through ``complete``/``fail``. ``perform`` resolves the job's class by
    name and calls ``klass.perform(job)``.
    """

    def __init__(
        self,
        client: Client,
        *,
        jid: str,
        klass_name: str,
        queue_name: str,
        data: Optional[dict[str, Any]] = None,
        worker_name: str = '',
        state: str = 'running',
        priority: int = 0,
        tags: Optional[list[str]] = None,
        retries: int = 0,
        remaining: int = 0,
        expires_at: float = 0.0,
    ) -> None:
        self.client = client
        self.jid = jid
        self.klass_name = klass_name
        self.queue_name = queue_name
        self.data = data if data is not None else {}
        self.worker_name = worker_name
        self.state = state
        self.priority = priority
        self.tags = tags or []
        self.retries = retries
        self.remaining = remaining
        self.expires_at = expires_at
        self.state_changed = False
        self._lock_lost = threading.Event()

    @classmethod
    def from_dict(cls, client: Client, attrs: dict[str, Any]) -> Job:
        """Build a job from the engine's JSON representation."""
        tags = attrs.get('tags') or []
        return cls(
            client,
            jid=attrs['jid'],
            klass_name=attrs['klass'],
            queue_name=attrs.get('queue', ''),
            data=_load_data(attrs.get('data')),
            worker_name=attrs.get('worker', ''),
            state=attrs.get('state', 'running'),
            priority=int(attrs.get('priority', 0)),
            # An empty Lua table encodes as {}.
            tags=list(tags) if isinstance(tags, list) else [],
            retries=int(attrs.get('retries', 0)),
            remaining=int(attrs.get('remaining', 0)),
            expires_at=float(attrs.get('expires', 0.0)),
        )

    @property
    def description(self) -> str:
        return f'{self.klass_name} ({self.jid} / {self.queue_name})'

    @property
    def lock_lost(self) -> bool:
        return self._lock_lost.is_set()

    def mark_lock_lost(self) -> None:
        """Record that the engine handed this job to someone else.

        Called from the lock-loss listener thread; the payload notices on its
        next ``heartbeat()`` or ``check_lock()``.
        """
        self._lock_lost.set()

    def check_lock(self) -> None:
        if self._lock_lost.is_set():
            raise JobLockLost(f'Lost lock for job {self.jid}')

    def klass(self) -> Any:
        return resolve_object(self.klass_name)

    def perform(self) -> Any:
        return self.klass().perform(self)

    def _encoded_data(self) -> str:
        return json.dumps(self.data)

    def heartbeat(self) -> float:
        """Renew the lock; raises JobLockLost once the job is no longer ours."""
        self.check_lock()
        try:
            expires = self.client.call(
                'heartbeat', self.jid, self.client.worker_name, self._encoded_data()
            )
        except ScriptRuntimeError as exc:
            self.mark_lock_lost()
            raise JobLockLost(str(exc)) from exc
        self.expires_at = float(expires)
        return self.expires_at

    def complete(self, next_queue: Optional[str] = None) -> Any:
        args: list[Any] = [
            self.jid,
            self.client.worker_name,
            self.queue_name,
            self._encoded_data(),
        ]
        if next_queue:
            args.extend(['next', next_queue])
        try:
            result = self.client.call('complete', *args)
        except ScriptRuntimeError as exc:
            raise CantCompleteError(str(exc)) from exc
        self.state_changed = True
        return result

    def fail(self, group: str, message: str) -> Any:
        try:
            result = self.client.call(
                'fail',
                self.jid,
                self.client.worker_name,
                group,
                message,
                self._encoded_data(),
            )
        except ScriptRuntimeError as exc:
            raise CantFailError(str(exc)) from exc
        self.state_changed = True
        return result

    def cancel(self) -> Any:
        result = self.client.call('cancel', self.jid)
        self.state_changed = True
        return result

    def __repr__(self) -> str:
        return f'<Job {self.description}>'
