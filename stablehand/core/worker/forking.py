# stablehand/core/worker/forking.py
"""
Pre-forking supervisor: keeps ``num_workers`` SerialWorker children alive.

Parent                              Child (one per slot)
------                              --------------------
register signals, start control     install SerialWorker signal handlers
fork N children (staggered)  ---->  sleep random(0, max_startup_interval)
reap loop:                          reconnect every engine client
  waitpid(-1, WNOHANG)              run middleware after_fork hooks
  child died -> fork replacement    SerialWorker.run()
  fork failed -> retry later        os._exit(status)

Signals received by the parent:

  TERM, INT  forward TERM/INT to children (they exit at once), wait, exit
  QUIT       forward QUIT (children finish their current job), wait, exit
  USR1       forward TERM to children but keep running; the reap loop
             replaces them
  USR2, CONT forwarded (pause / resume children)
  HUP        call the sighup handler

Shutdown signals are handled on a dedicated thread so the control thread stays
free while the pool drains. The drain is bounded by ``shutdown_timeout``.

A child blocks the trapped signals from the moment it resets the inherited
handlers until its own handlers are in place, so a signal forwarded while it
is still starting is applied rather than fatal.
"""

from __future__ import annotations

import dataclasses
import os
import random
import sys
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import NoReturn, Optional

from stablehand.core.defaults import (
    FORK_RETRY_INTERVAL_S,
    LOCK_LOST_EXIT_CODE,
    REAP_POLL_INTERVAL_S,
)
from stablehand.core.engine.failure import FailureFormatter
from stablehand.core.engine.job import Job
from stablehand.core.engine.reservers import Reserver
from stablehand.core.logging import get_logger
from stablehand.core.models.worker import WorkerConfig
from stablehand.core.types.status import RunState, SupervisorState
from stablehand.core.worker.base import BaseWorker
from stablehand.core.worker.control import resolve_signal
from stablehand.core.worker.middleware import Middleware
from stablehand.core.worker.serial import SerialWorker

logger = get_logger('supervisor')


@dataclass
class Slot:
    """One position in the pool; survives its process being replaced.

    ``pid`` is 0 while the slot is vacant, waiting for a fork to succeed.
    """

    worker_id: int
    pid: int
    sandbox: Optional[str] = None


def _exit_on_lock_lost(job: Job) -> NoReturn:
    os._exit(LOCK_LOST_EXIT_CODE)


class ForkingWorker(BaseWorker):
    def __init__(
        self,
        reserver: Reserver,
        config: Optional[WorkerConfig] = None,
        *,
        middlewares: Sequence[Middleware] = (),
        sighup_handler: Optional[Callable[[], None]] = None,
        formatter: Optional[FailureFormatter] = None,
    ) -> None:
        super().__init__(
            reserver,
            config,
            middlewares=middlewares,
            sighup_handler=sighup_handler,
            formatter=formatter,
        )
        self.num_workers = self.config.num_workers
        self.max_startup_interval = self.config.max_startup_interval
        self.shutdown_timeout = self.config.shutdown_timeout
        self.supervisor_state = SupervisorState.STARTING

        # pid -> slot. Every read and write goes through _sandbox_lock.
        self._sandboxes: dict[int, Slot] = {}
        self._vacant: list[Slot] = []
        self._retry_fork_at = 0.0
        self._sandbox_lock = threading.RLock()
        self._shutdown_threads: list[threading.Thread] = []

    def spawn(self) -> SerialWorker:
        """The worker a child process runs."""
        worker = SerialWorker(
            self.reserver,
            self.config,
            middlewares=self.middlewares,
            sighup_handler=self.sighup_handler,
            formatter=self.failure_formatter,
        )
        worker.on_current_job_lock_lost(_exit_on_lock_lost)
        return worker

    # ----- signals -----

    def register_signal_handlers(self) -> None:
        trap = self._control.trap
        trap('TERM', lambda: self._start_shutdown_thread('TERM'))
        trap('INT', lambda: self._start_shutdown_thread('INT'))
        trap('QUIT', lambda: self._start_shutdown_thread('QUIT'))
        trap('USR1', lambda: self.stop('TERM'))
        trap('USR2', lambda: self.stop('USR2'))
        trap('CONT', lambda: self.stop('CONT'))
        trap('HUP', lambda: self.sighup_handler())

    def _start_shutdown_thread(self, signal_name: str) -> None:
        thread = threading.Thread(
            target=self.handle_shutdown,
            args=(signal_name,),
            name=f'shutdown-{signal_name}',
            daemon=True,
        )
        self._shutdown_threads.append(thread)
        thread.start()

    def handle_shutdown(self, signal_name: str) -> None:
        logger.warning(f'Received {signal_name}, shutting down')
        self.stop_and_wait(signal_name)

    def shutdown(self, graceful: bool = True) -> None:
        """Stop the pool and wait for it to drain.

        Children get QUIT when ``graceful`` and TERM otherwise. The supervisor
        itself never exits here; ``run`` returns once the drain is over.
        """
        self.stop_and_wait('QUIT' if graceful else 'TERM')

    def _begin_shutdown(self, graceful: bool) -> None:
        if graceful:
            self._transition(RunState.SHUTTING_DOWN_GRACEFUL)
        else:
            self._transition(RunState.SHUTTING_DOWN_IMMEDIATE)
        self.supervisor_state = SupervisorState.SHUTTING_DOWN

    # ----- main loop -----

    def run(self) -> None:
        self.supervisor_state = SupervisorState.STARTING
        self.listen_for_signals()
        try:
            self.startup_sandboxes()
            if not self.shutting_down:
                self.supervisor_state = SupervisorState.RUNNING
            self._reap_loop()
        finally:
            for thread in self._shutdown_threads:
                thread.join()
            self._control.stop()
            self.supervisor_state = SupervisorState.TERMINATED
            logger.info('Supervisor stopped')

    def _reap_loop(self) -> None:
        while not self.shutting_down:
            try:
                reaped = self.reap_once()
            except OSError as exc:
                logger.error(f'Failed to wait for child process: {exc!r}')
                if self.shutting_down:
                    break
                reaped = False
            if not reaped:
                self._sleep(REAP_POLL_INTERVAL_S)

    def reap_once(self) -> bool:
        """Reap at most one exited child. True when one was reaped."""
        with self._sandbox_lock:
            if self.shutting_down:
                return False
            self.refill_vacant_slots()
            if not self._sandboxes:
                return False
            pid, status = os.waitpid(-1, os.WNOHANG)
            if pid == 0:
                return False
            self._handle_child_exit(pid, status)
            return True

    def _handle_child_exit(self, pid: int, status: int) -> None:
        code = os.waitstatus_to_exitcode(status)
        if code == 0:
            logger.info(f'Worker process {pid} exited with status 0')
        elif code == LOCK_LOST_EXIT_CODE:
            logger.warning(f'Worker process {pid} exited after losing its job lock')
        elif code < 0:
            logger.warning(f'Worker process {pid} killed by signal {-code}')
        else:
            logger.warning(f'Worker process {pid} died with status {code}')

        with self._sandbox_lock:
            if self.shutting_down:
                self._sandboxes.pop(pid, None)
                return
            self.spawn_replacement_child(pid)

    # ----- pool management -----

    def startup_sandboxes(self) -> None:
        logger.debug(f'Starting to run with {self.num_workers} workers')
        for worker_id in range(self.num_workers):
            with self._sandbox_lock:
                if self.shutting_down:
                    return
                cpid = self._fill_slot(Slot(worker_id=worker_id, pid=0), stagger=True)
            if cpid is not None:
                logger.info(f'Spawned worker {cpid}')

    def spawn_replacement_child(self, pid: int) -> Optional[int]:
        """Give the slot of ``pid`` to a fresh child. Returns the new pid."""
        with self._sandbox_lock:
            if self.shutting_down:
                return None
            slot = self._sandboxes.pop(pid, None)
            if slot is None:
                logger.warning(f'Reaped unknown child {pid}, not replacing it')
                return None
            cpid = self._fill_slot(slot, stagger=False)
        if cpid is not None:
            logger.info(f'Spawned worker {cpid} to replace {pid}')
        return cpid

    def refill_vacant_slots(self) -> None:
        """Retry the forks that failed, at most once per FORK_RETRY_INTERVAL_S."""
        with self._sandbox_lock:
            if not self._vacant or time.monotonic() < self._retry_fork_at:
                return
            vacant, self._vacant = self._vacant, []
            for slot in vacant:
                cpid = self._fill_slot(slot, stagger=False)
                if cpid is not None:
                    logger.info(f'Spawned worker {cpid} into vacant slot {slot.worker_id}')

    def _fill_slot(self, slot: Slot, stagger: bool) -> Optional[int]:
        # The slot stays vacant until a fork for it succeeds.
        try:
            cpid = self._fork_child_process(stagger=stagger)
        except OSError as exc:
            logger.error(f'Failed to fork worker for slot {slot.worker_id}: {exc!r}')
            self._vacant.append(dataclasses.replace(slot, pid=0))
            self._retry_fork_at = time.monotonic() + FORK_RETRY_INTERVAL_S
            return None
        self._sandboxes[cpid] = dataclasses.replace(slot, pid=cpid)
        return cpid

    def _fork_child_process(self, stagger: bool) -> int:
        pid = os.fork()
        if pid == 0:
            self._run_child(stagger)
        return pid

    def _run_child(self, stagger: bool) -> NoReturn:
        status = 1
        try:
            with self._control.blocked():
                self._control.restore_defaults()
                worker = self.spawn()
                worker.listen_for_signals()
            if stagger and self.max_startup_interval > 0:
                # Calm the thundering herd on startup.
                worker._sleep(random.uniform(0, self.max_startup_interval))
            self.reconnect_each_client()
            self.after_fork()
            worker.run()
            status = 0
        except Exception as exc:
            logger.error(f'Worker process {os.getpid()} crashed: {exc!r}')
        finally:
            sys.stdout.flush()
            sys.stderr.flush()
            os._exit(status)

    def children(self) -> list[int]:
        with self._sandbox_lock:
            return list(self._sandboxes)

    def slots(self) -> list[Slot]:
        with self._sandbox_lock:
            return sorted(
                [*self._sandboxes.values(), *self._vacant], key=lambda slot: slot.worker_id
            )

    def stop(self, signal_name: str = 'QUIT') -> None:
        """Send ``signal_name`` to every child."""
        signum = resolve_signal(signal_name)
        if signum is None:
            logger.warning(f'Signal {signal_name} not supported.')
            return
        logger.warning(f'Sending {signal_name} to children')
        for pid in self.children():
            try:
                os.kill(pid, signum)
            except ProcessLookupError:
                # Already exited; the reap loop will collect it.
                pass

    def stop_and_wait(self, signal_name: str = 'QUIT') -> None:
        """Shut down, signal every child and wait for them to exit.

        QUIT is a graceful shutdown; any other signal makes it immediate.
        """
        self._begin_shutdown(graceful=signal_name == 'QUIT')
        self.shutdown_sandboxes(signal_name)

    def shutdown_sandboxes(self, signal_name: str) -> None:
        with self._sandbox_lock:
            self.stop(signal_name)
            logger.warning('Waiting for child processes')

            deadline = time.monotonic() + self.shutdown_timeout
            while self._sandboxes and time.monotonic() < deadline:
                try:
                    pid, _status = os.waitpid(-1, os.WNOHANG)
                except OSError as exc:
                    logger.warning(f'Failed to wait for child processes: {exc!r}')
                    break
                if pid == 0:
                    time.sleep(REAP_POLL_INTERVAL_S)
                    continue
                logger.warning(f'Child {pid} stopped')
                self._sandboxes.pop(pid, None)

            if self._sandboxes:
                for pid in self._sandboxes:
                    logger.warning(f'Could not wait for child {pid}')
            else:
                logger.warning('All children have stopped')
            self._sandboxes.clear()
            self._vacant.clear()
