# stablehand/core/worker/serial.py
from __future__ import annotations

import os

from stablehand.core.logging import get_logger
from stablehand.core.worker.base import BaseWorker

logger = get_logger('worker')


class SerialWorker(BaseWorker):
    """Runs reserved jobs one after another in the current process."""

    def run(self) -> None:
        self.listen_for_signals()
        logger.info(f'Worker started (pid {os.getpid()})')
        self.procline(f'Starting {self.reserver.description}')
        try:
            with self.listen_for_lost_lock():
                for job in self.jobs():
                    self.perform(job)
        finally:
            self.deregister()
            self._control.stop()
            logger.info('Worker stopped')
