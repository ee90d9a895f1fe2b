"""stablehand - worker runtime and process supervisor for a Redis-backed job queue"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.engine import (
    CantCompleteError,
    CantFailError,
    Client,
    EngineError,
    Job,
    JobLockLost,
    LuaPlugin,
    LuaScript,
    OrderedReserver,
    Queue,
    Reserver,
    RoundRobinReserver,
    ScriptRuntimeError,
)
from .core.models.redis import RedisConfig
from .core.models.worker import WorkerConfig
from .core.types.status import RunState, SupervisorState
from .core.errors import (
    ConfigurationError,
    ErrorCode,
    MultipleValidationErrors,
    StablehandError,
    ValidationReport,
)
from .core.worker.base import BaseWorker
from .core.worker.serial import SerialWorker
from .core.worker.forking import ForkingWorker, Slot
from .core.worker.middleware import Middleware, RedisReconnect

__all__ = [
    # Engine
    'Client',
    'Queue',
    'Job',
    'LuaScript',
    'LuaPlugin',
    'Reserver',
    'OrderedReserver',
    'RoundRobinReserver',
    # Workers
    'BaseWorker',
    'SerialWorker',
    'ForkingWorker',
    'Slot',
    'Middleware',
    'RedisReconnect',
    'RunState',
    'SupervisorState',
    # Configuration
    'WorkerConfig',
    'RedisConfig',
    # Errors
    'EngineError',
    'ScriptRuntimeError',
    'CantCompleteError',
    'CantFailError',
    'JobLockLost',
    'StablehandError',
    'ConfigurationError',
    'ErrorCode',
    'ValidationReport',
    'MultipleValidationErrors',
]
