# core/types/status.py
"""
Core state enums used throughout the library.
This module should not import from other library modules.
"""

from enum import Enum


class RunState(Enum):
    """Run state of a single worker process"""

    RUNNING = 'running'  # Reserving and executing jobs. Initial state.

    PAUSED = 'paused'  # No new reservations; polls the state every interval.

    SHUTTING_DOWN_GRACEFUL = (
        'shutting_down_graceful'  # Finish the in-flight job, then stop.
    )

    SHUTTING_DOWN_IMMEDIATE = (
        'shutting_down_immediate'  # Exit without finishing the in-flight job.
    )

    @property
    def is_shutting_down(self) -> bool:
        return self in SHUTDOWN_STATES


SHUTDOWN_STATES: frozenset[RunState] = frozenset({
    RunState.SHUTTING_DOWN_GRACEFUL,
    RunState.SHUTTING_DOWN_IMMEDIATE,
})


class SupervisorState(Enum):
    """Lifecycle of the process supervisor"""

    STARTING = 'starting'  # Forking the initial pool.
    RUNNING = 'running'  # Reaping and replacing children.
    SHUTTING_DOWN = 'shutting_down'  # Forwarding the stop signal, draining children.
    TERMINATED = 'terminated'  # All slots released.
