# stablehand/core/engine/subscriber.py
"""
Redis pub/sub subscription running in a background thread.

The engine publishes worker events on ``ql:w:<worker_name>``:

    {"event": "lock_lost", "jid": "8f3c..."}

A ``Subscriber`` owns one pubsub connection and one daemon thread; every
decoded message is handed to the callback as ``(channel, payload)``.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from redis.client import PubSub

from stablehand.core.logging import get_logger

if TYPE_CHECKING:
    from stablehand.core.engine.client import Client

logger = get_logger('subscriber')

LOCK_LOST_EVENT = 'lock_lost'

MessageHandler = Callable[[str, dict[str, Any]], None]


@dataclass(slots=True, frozen=True)
class WorkerEvent:
    """A notification published on a worker channel."""

    event: str
    jid: Optional[str]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WorkerEvent:
        return cls(event=str(payload.get('event', '')), jid=payload.get('jid'))

    @property
    def is_lock_lost(self) -> bool:
        return self.event == LOCK_LOST_EVENT


class Subscriber:
    def __init__(
        self,
        client: Client,
        channel: str,
        handler: MessageHandler,
        *,
        poll_timeout: float = 0.5,
    ) -> None:
        self.client = client
        self.channel = channel
        self._handler = handler
        self._poll_timeout = poll_timeout
        self._pubsub: Optional[PubSub] = None
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def start(
        cls,
        client: Client,
        channel: str,
        handler: MessageHandler,
        **kwargs: Any,
    ) -> Subscriber:
        subscriber = cls(client, channel, handler, **kwargs)
        subscriber.begin()
        return subscriber

    def begin(self) -> None:
        pubsub = self.client.redis.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self.channel: self._on_message})
        self._pubsub = pubsub
        self._thread = pubsub.run_in_thread(
            sleep_time=self._poll_timeout,
            daemon=True,
            exception_handler=self._on_error,
        )
        logger.debug(f'Subscribed to {self.channel}')

    def _on_message(self, message: dict[str, Any]) -> None:
        data = message.get('data')
        try:
            payload = json.loads(data) if isinstance(data, (str, bytes)) else None
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            logger.warning(f'Ignoring malformed message on {self.channel}: {data!r}')
            return
        self._handler(self.channel, payload)

    def _on_error(self, exc: BaseException, pubsub: PubSub, thread: Any) -> None:
        # Keep listening: a dropped connection is re-established and the
        # channel re-subscribed by the next get_message().
        logger.error(f'Error while listening on {self.channel}: {exc!r}')
        time.sleep(self._poll_timeout)

    def stop(self) -> None:
        thread, self._thread = self._thread, None
        pubsub, self._pubsub = self._pubsub, None
        if thread is not None:
            thread.stop()  # type: ignore[attr-defined]
            thread.join(timeout=max(1.0, self._poll_timeout * 4))
        if pubsub is not None:
            pubsub.close()
        logger.debug(f'Unsubscribed from {self.channel}')
