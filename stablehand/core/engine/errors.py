"""Runtime errors raised by the engine client.

These are control-flow errors of a running worker, unlike the startup errors
in ``stablehand.core.errors``:

* ``ScriptRuntimeError`` -- the engine script raised; carries its one-line
  diagnostic.
* ``CantCompleteError`` / ``CantFailError`` -- the job changed hands before the
  worker could report on it. Logged by the worker, never escalated.
* ``JobLockLost`` -- the engine revoked the worker's claim on the job. Aborts
  only the current job.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine client errors."""


class ScriptRuntimeError(EngineError):
    """The engine script raised an error; the message is its diagnostic line."""


class CantCompleteError(EngineError):
    """The engine refused to complete the job (already failed, cancelled, or not ours)."""


class CantFailError(EngineError):
    """The engine refused to fail the job (cancelled, or not ours)."""


class JobLockLost(EngineError):
    """The worker no longer holds the lock on the job it is executing."""
