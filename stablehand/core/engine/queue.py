# stablehand/core/engine/queue.py
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional

from stablehand.core.engine.job import Job

if TYPE_CHECKING:
    from stablehand.core.engine.client import Client


def _decode_jobs(raw: Any) -> list[dict[str, Any]]:
    # The engine returns its job list JSON-encoded.
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        decoded = json.loads(raw)
    else:
        decoded = raw
    if isinstance(decoded, dict):
        # An empty Lua table encodes as {}.
        return []
    return list(decoded)


class Queue:
    """A named queue on the engine."""

    def __init__(self, name: str, client: Client) -> None:
        self.name = name
        self.client = client

    def pop(self, count: Optional[int] = None) -> Job | list[Job] | None:
        """Reserve jobs for this worker.

        With no count, returns one job or None; with a count, a list.
        """
        raw = self.client.call('pop', self.name, self.client.worker_name, count or 1)
        jobs = [Job.from_dict(self.client, attrs) for attrs in _decode_jobs(raw)]
        if count is None:
            return jobs[0] if jobs else None
        return jobs

    def __repr__(self) -> str:
        return f'<Queue {self.name}>'
