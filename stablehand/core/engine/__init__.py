from stablehand.core.engine.client import Client
from stablehand.core.engine.errors import (
    CantCompleteError,
    CantFailError,
    EngineError,
    JobLockLost,
    ScriptRuntimeError,
)
from stablehand.core.engine.job import Job
from stablehand.core.engine.queue import Queue
from stablehand.core.engine.reservers import OrderedReserver, Reserver, RoundRobinReserver
from stablehand.core.engine.scripts import LuaPlugin, LuaScript

__all__ = [
    'Client',
    'Job',
    'Queue',
    'Reserver',
    'OrderedReserver',
    'RoundRobinReserver',
    'LuaScript',
    'LuaPlugin',
    'EngineError',
    'ScriptRuntimeError',
    'CantCompleteError',
    'CantFailError',
    'JobLockLost',
]
