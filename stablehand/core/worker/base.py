# stablehand/core/worker/base.py
"""
Single-process worker lifecycle.

Signals (handled on the control thread, never in the interrupted frame):

  TERM, INT  exit immediately, abandoning the current job
  QUIT       finish the current job, then exit
  USR2       pause: stop reserving new jobs
  CONT       resume after USR2
  HUP        call the sighup handler (e.g. dump stacks to the log)

Run states:

  RUNNING <-> PAUSED
     |          |
     v          v
  SHUTTING_DOWN_GRACEFUL -> SHUTTING_DOWN_IMMEDIATE

Once a shutdown state is entered, pause/resume no longer change anything.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

from setproctitle import setproctitle

from stablehand.core.banner import get_version
from stablehand.core.defaults import IMMEDIATE_EXIT_CODE, WORKER_CHANNEL_PREFIX
from stablehand.core.engine.client import Client
from stablehand.core.engine.errors import CantCompleteError, CantFailError, JobLockLost
from stablehand.core.engine.failure import FailureFormatter, failure_formatter
from stablehand.core.engine.job import Job
from stablehand.core.engine.reservers import Reserver
from stablehand.core.engine.subscriber import Subscriber, WorkerEvent
from stablehand.core.logging import get_logger
from stablehand.core.models.worker import WorkerConfig
from stablehand.core.types.status import RunState
from stablehand.core.worker.control import SignalControl
from stablehand.core.worker.middleware import Middleware, build_chain
from stablehand.core.worker.state import CurrentJob

logger = get_logger('worker')

LockLostCallback = Callable[[Job], None]


def _noop() -> None:
    return None


class BaseWorker:
    def __init__(
        self,
        reserver: Reserver,
        config: Optional[WorkerConfig] = None,
        *,
        middlewares: Sequence[Middleware] = (),
        sighup_handler: Optional[Callable[[], None]] = None,
        formatter: Optional[FailureFormatter] = None,
    ) -> None:
        self.reserver = reserver
        self.config = config or WorkerConfig()
        self.interval = self.config.interval
        self.sighup_handler = sighup_handler or _noop
        self.failure_formatter = formatter or failure_formatter

        # Composed once; never changes while the worker runs.
        self.middlewares: tuple[Middleware, ...] = tuple(middlewares)
        self._around_perform = build_chain(self.middlewares, self._perform_payload)

        self._state = RunState.RUNNING
        self._state_lock = threading.Lock()
        self._wakeup = threading.Event()
        self.current_job = CurrentJob()
        self.procline_value = ''
        self._control = SignalControl(type(self).__name__.lower())
        self._uniq_clients: Optional[list[Client]] = None

        # Default behavior when a lock is lost: stop after the current job.
        self._on_lock_lost: LockLostCallback = self._shutdown_after_current_job

    # ----- state -----

    @property
    def run_state(self) -> RunState:
        with self._state_lock:
            return self._state

    @property
    def paused(self) -> bool:
        return self.run_state is RunState.PAUSED

    @property
    def shutting_down(self) -> bool:
        return self.run_state.is_shutting_down

    def _transition(self, target: RunState) -> bool:
        with self._state_lock:
            current = self._state
            if current is RunState.SHUTTING_DOWN_IMMEDIATE:
                return False
            if current is RunState.SHUTTING_DOWN_GRACEFUL and not target.is_shutting_down:
                return False
            self._state = target
        self._wakeup.set()
        return True

    def pause(self) -> None:
        """Take no new jobs until resumed; the current job keeps running."""
        if self._transition(RunState.PAUSED):
            self.procline(f'Paused -- {self.reserver.description}')

    def resume(self) -> None:
        self._transition(RunState.RUNNING)

    unpause = resume

    def shutdown(self, graceful: bool = True) -> None:
        """Stop after the current job, or right now when not graceful."""
        if graceful:
            self._transition(RunState.SHUTTING_DOWN_GRACEFUL)
            return
        self._transition(RunState.SHUTTING_DOWN_IMMEDIATE)
        self._exit_immediately()

    def _shutdown_after_current_job(self, job: Job) -> None:
        self.shutdown(graceful=True)

    def _exit_immediately(self) -> NoReturn:
        logger.warning('Shutting down immediately')
        os._exit(IMMEDIATE_EXIT_CODE)

    def procline(self, value: str) -> None:
        """Show a human-readable status line in process listings."""
        now = datetime.now(timezone.utc).isoformat(timespec='seconds')
        self.procline_value = f'stablehand-{get_version()}: {value} at {now}'
        setproctitle(self.procline_value)
        logger.debug(self.procline_value)

    # ----- signals -----

    def register_signal_handlers(self) -> None:
        trap = self._control.trap
        trap('TERM', lambda: self.shutdown(graceful=False))
        trap('INT', lambda: self.shutdown(graceful=False))
        trap('HUP', lambda: self.sighup_handler())
        trap('QUIT', lambda: self.shutdown(graceful=True))
        trap('USR2', self.pause)
        trap('CONT', self.resume)

    def listen_for_signals(self) -> None:
        """Install the handlers and start the thread that applies them."""
        self.register_signal_handlers()
        self._control.start()

    # ----- reservation loop -----

    def _sleep(self, seconds: float) -> None:
        # Any state transition wakes the loop early.
        self._wakeup.wait(seconds)

    def jobs(self) -> Iterator[Job]:
        """Reserved jobs, one at a time, until a shutdown state is entered."""
        while not self.shutting_down:
            self._wakeup.clear()
            if self.paused:
                logger.debug('Paused...')
                self._sleep(self.interval)
            else:
                job: Optional[Job] = None
                try:
                    job = self.reserver.reserve()
                except Exception as exc:
                    # Logged only; the next pass reserves again.
                    logger.error(f'Error reserving job: {type(exc).__name__}: {exc}')

                if job is None:
                    self._no_job_available()
                else:
                    self.current_job.set(job)
                    try:
                        yield job
                    finally:
                        self.current_job.clear()

    def _no_job_available(self) -> None:
        if self.interval == 0:
            return
        self.procline(f'Waiting for {self.reserver.description}')
        logger.debug(f'Sleeping for {self.interval} seconds')
        self._sleep(self.interval)

    # ----- execution -----

    def _perform_payload(self, job: Job) -> Any:
        return job.perform()

    def around_perform(self, job: Job) -> Any:
        return self._around_perform(job)

    def perform(self, job: Job) -> None:
        start_time = time.monotonic()
        try:
            self.around_perform(job)
        except JobLockLost:
            logger.warning(f'Lost lock for job {job.jid}')
        except Exception as exc:
            self.fail_job(job, exc)
        else:
            self.try_complete(job)
        finally:
            elapsed = time.monotonic() - start_time
            logger.info(f'Job {job.description} took {elapsed:.3f} seconds')

    def try_complete(self, job: Job) -> None:
        """Complete the job unless its own code already moved it to another state."""
        if job.state_changed:
            return
        try:
            job.complete()
        except CantCompleteError as exc:
            # Already failed or cancelled, or now owned by another worker.
            logger.warning(f'Failed to complete {job!r}: {exc}')

    def fail_job(self, job: Job, error: BaseException) -> None:
        failure = self.failure_formatter.format(job, error)
        logger.error(f'Got {failure.group} failure from {job!r}\n{failure.message}')
        try:
            job.fail(*failure)
        except CantFailError as exc:
            logger.warning(f'Failed to fail {job!r}: {exc}')

    # ----- engine clients -----

    def uniq_clients(self) -> list[Client]:
        if self._uniq_clients is None:
            clients: list[Client] = []
            for queue in self.reserver.queues:
                if not any(queue.client is seen for seen in clients):
                    clients.append(queue.client)
            self._uniq_clients = clients
        return self._uniq_clients

    def reconnect_each_client(self) -> None:
        for client in self.uniq_clients():
            client.reconnect()

    def deregister(self) -> None:
        for client in self.uniq_clients():
            try:
                client.deregister_workers(client.worker_name)
            except Exception as exc:
                logger.error(f'Failed to deregister {client.worker_name}: {exc!r}')

    def after_fork(self) -> None:
        for middleware in self.middlewares:
            middleware.after_fork(self)

    # ----- lock loss -----

    def on_current_job_lock_lost(self, callback: LockLostCallback) -> None:
        self._on_lock_lost = callback

    def _handle_worker_event(self, channel: str, payload: dict[str, Any]) -> None:
        event = WorkerEvent.from_payload(payload)
        if not event.is_lock_lost:
            return
        with self.current_job.with_job() as job:
            if job is None or event.jid != job.jid:
                logger.debug(f'Ignoring lock_lost for {event.jid} on {channel}')
                return
            job.mark_lock_lost()
            self._on_lock_lost(job)

    @contextmanager
    def listen_for_lost_lock(self) -> Iterator[None]:
        subscribers: list[Subscriber] = []
        try:
            for client in self.uniq_clients():
                subscribers.append(
                    Subscriber.start(
                        client,
                        f'{WORKER_CHANNEL_PREFIX}{client.worker_name}',
                        self._handle_worker_event,
                    )
                )
            yield
        finally:
            for subscriber in subscribers:
                subscriber.stop()
