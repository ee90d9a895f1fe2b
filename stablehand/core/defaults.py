"""Shared default constants for the stablehand library."""

# Seconds a worker sleeps between empty polls (and between checks while paused).
# 0 turns the reservation loop into a busy poll.
DEFAULT_POLL_INTERVAL_S: float = 5.0

# Upper bound of the random delay a freshly forked child waits before its first
# reservation, so a large pool does not hit the engine all at once.
DEFAULT_MAX_STARTUP_INTERVAL_S: float = 10.0

# How long the supervisor waits for children to exit during shutdown before it
# gives up on the stragglers.
DEFAULT_SHUTDOWN_TIMEOUT_S: float = 30.0

# Pause between non-blocking waitpid() attempts in the reap loops.
REAP_POLL_INTERVAL_S: float = 0.01

# Exit status of a forked worker that lost the lock on its current job.
# 11 reads a little like "ll", lock lost.
LOCK_LOST_EXIT_CODE: int = 11

# Exit status of a worker stopped by an immediate-stop signal.
IMMEDIATE_EXIT_CODE: int = 1

# Per-worker pub/sub channel prefix; the worker name is appended.
WORKER_CHANNEL_PREFIX: str = 'ql:w:'

# Name of the engine script registered by the client.
ENGINE_SCRIPT_NAME: str = 'qless'

# Upper bound of the forking worker pool size.
MAX_NUM_WORKERS: int = 1_024

# Minimum pause before the supervisor retries a fork that failed.
FORK_RETRY_INTERVAL_S: float = 1.0
