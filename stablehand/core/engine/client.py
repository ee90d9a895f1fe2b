# stablehand/core/engine/client.py
"""Connection to the queue engine and the entry point to its commands."""

from __future__ import annotations

import os
import socket
import time
from typing import Any, Optional

from redis import Redis

from stablehand.core.defaults import ENGINE_SCRIPT_NAME
from stablehand.core.engine.queue import Queue
from stablehand.core.engine.scripts import LuaScript
from stablehand.core.logging import get_logger
from stablehand.core.models.redis import RedisConfig
from stablehand.core.utils.url import mask_redis_url

logger = get_logger('client')


class Client:
    """
    Thin wrapper around a Redis connection and the engine script.

    Every engine command goes through ``call``, which prepends the command
    name and the current time, as the engine script expects:

        client.call('complete', jid, worker, queue, data)
          -> EVALSHA <sha> 0 complete <now> jid worker queue data
    """

    def __init__(
        self,
        redis: Redis,
        script_source: str,
        *,
        worker_name: Optional[str] = None,
    ) -> None:
        self.redis = redis
        self._script = LuaScript(ENGINE_SCRIPT_NAME, redis, script_source)
        self._worker_name = worker_name
        self._queues: dict[str, Queue] = {}

    @classmethod
    def from_config(cls, config: RedisConfig) -> Client:
        redis = Redis.from_url(
            config.url,
            decode_responses=True,
            socket_timeout=config.socket_timeout,
        )
        logger.debug(f'Connecting to {mask_redis_url(config.url)}')
        return cls(redis, config.read_script(), worker_name=config.worker_name)

    @property
    def worker_name(self) -> str:
        # Derived per access so a forked child reports its own pid.
        if self._worker_name:
            return self._worker_name
        return f'{socket.gethostname()}-{os.getpid()}'

    @property
    def script(self) -> LuaScript:
        return self._script

    def queue(self, name: str) -> Queue:
        if name not in self._queues:
            self._queues[name] = Queue(name, self)
        return self._queues[name]

    def call(self, command: str, *args: Any) -> Any:
        return self._script.call(command, time.time(), *args)

    def load_script(self) -> str:
        return self._script.load()

    def deregister_workers(self, *worker_names: str) -> Any:
        return self.call('worker.deregister', *worker_names)

    def reconnect(self) -> None:
        """Drop every pooled connection; the next command opens a fresh one.

        A forked child must call this before its first command so it never
        writes to a socket it shares with its parent.
        """
        self.redis.connection_pool.disconnect()

    def __repr__(self) -> str:
        return f'<Client worker={self.worker_name}>'
