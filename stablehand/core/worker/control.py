# stablehand/core/worker/control.py
"""
Signal delivery decoupled from signal handling.

The OS handler installed by ``trap`` only puts the signal name on a
``queue.SimpleQueue`` (whose ``put`` is reentrant and safe in a handler).
A daemon control thread takes names off the queue and runs the registered
action, so state transitions, locking and logging never happen inside the
interrupted frame of the main thread.
"""

from __future__ import annotations

import queue
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from types import FrameType
from typing import Optional

from stablehand.core.logging import get_logger

logger = get_logger('control')

Action = Callable[[], None]


def resolve_signal(signal_name: str) -> Optional[signal.Signals]:
    """'TERM' -> signal.SIGTERM, or None where the platform lacks it."""
    return getattr(signal, f'SIG{signal_name}', None)


class SignalControl:
    def __init__(self, name: str) -> None:
        self.name = name
        self._events: queue.SimpleQueue[Optional[str]] = queue.SimpleQueue()
        self._actions: dict[str, Action] = {}
        self._trapped: dict[str, signal.Signals] = {}
        self._thread: Optional[threading.Thread] = None

    def trap(self, signal_name: str, action: Action) -> bool:
        """Route ``signal_name`` to ``action``. Returns False when unsupported."""
        signum = resolve_signal(signal_name)
        if signum is None:
            logger.warning(f'Signal {signal_name} not supported.')
            return False
        try:
            signal.signal(signum, self._enqueue)
        except (OSError, ValueError) as exc:
            logger.warning(f'Signal {signal_name} not supported: {exc}')
            return False
        self._actions[signal_name] = action
        self._trapped[signal_name] = signum
        return True

    def _enqueue(self, signum: int, frame: Optional[FrameType]) -> None:
        self._events.put_nowait(signal.Signals(signum).name.removeprefix('SIG'))

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run, name=f'{self.name}-control', daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while True:
            signal_name = self._events.get()
            if signal_name is None:
                return
            self.dispatch(signal_name)

    def dispatch(self, signal_name: str) -> None:
        """Run the action registered for ``signal_name`` on the calling thread."""
        action = self._actions.get(signal_name)
        if action is None:
            logger.debug(f'No action registered for {signal_name}')
            return
        logger.debug(f'Handling {signal_name}')
        try:
            action()
        except Exception as exc:
            logger.error(f'Handler for {signal_name} failed: {exc!r}')

    def stop(self, timeout: float = 1.0) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._events.put_nowait(None)
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def restore_defaults(self) -> None:
        """Give every trapped signal back its default disposition.

        A forked child inherits handlers that feed the parent's queue, and the
        parent's control thread does not exist in the child.
        """
        for signum in self._trapped.values():
            signal.signal(signum, signal.SIG_DFL)
        self._trapped.clear()
        self._actions.clear()
        self._events = queue.SimpleQueue()
        self._thread = None

    @contextmanager
    def blocked(self) -> Iterator[None]:
        """Hold back every trapped signal until the block exits.

        Signals that arrive meanwhile stay pending and go to whatever handler
        is installed when the block exits.
        """
        signums = set(self._trapped.values())
        signal.pthread_sigmask(signal.SIG_BLOCK, signums)
        try:
            yield
        finally:
            signal.pthread_sigmask(signal.SIG_UNBLOCK, signums)
