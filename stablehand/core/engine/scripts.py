# stablehand/core/engine/scripts.py
"""
Server-resident Lua scripts invoked by content hash.

The engine keeps registered scripts in a cache keyed by the SHA1 of their
source. ``LuaScript`` calls its script with EVALSHA and hides cache misses
from callers:

  call(*argv)
    -> EVALSHA sha 0 *argv
    -> NOSCRIPT?  reload() once, EVALSHA once more
    -> script raised?  ScriptRuntimeError(<diagnostic line>)

A second NOSCRIPT in the same call is not retried again; it surfaces as the
original ``redis`` error so a persistent server-side problem stays visible.
"""

from __future__ import annotations

import hashlib
import re
from functools import cached_property
from typing import Any

from redis import Redis
from redis.exceptions import NoScriptError, ResponseError

from stablehand.core.engine.errors import ScriptRuntimeError
from stablehand.core.logging import get_logger

logger = get_logger('scripts')

# The engine prefixes script errors with the chunk name and line, e.g.
# "ERR user_script:42: Complete(): Job given out to another worker ...".
# Redis 7 appends " script: <sha>, on @user_script:42." which is dropped.
_SCRIPT_ERROR_RE = re.compile(
    r'user_script:\d+:\s*(\w.*?)(?:\s+script: \w+, on @user_script:\d+\.)?$', re.MULTILINE
)

_NOSCRIPT_PREFIX = 'NOSCRIPT'

# Full-line Lua comments, including the line break.
_COMMENT_LINES_RE = re.compile(r'^\s*--.*$\n?', re.MULTILINE)


def sha1_hex(source: str) -> str:
    """Digest the engine uses to key its script cache."""
    return hashlib.sha1(source.encode('utf-8')).hexdigest()


def is_noscript_error(exc: BaseException) -> bool:
    match exc:
        case NoScriptError():
            return True
        case ResponseError() if str(exc).startswith(_NOSCRIPT_PREFIX):
            return True
        case _:
            return False


def parse_script_error(message: str) -> str | None:
    """Return the diagnostic that follows the ``user_script:<line>:`` prefix."""
    match = _SCRIPT_ERROR_RE.search(message)
    if match is None:
        return None
    return match.group(1)


class LuaScript:
    """A named Lua script living in the engine's script cache."""

    def __init__(self, name: str, redis: Redis, source: str) -> None:
        self.name = name
        self.redis = redis
        self._source = source
        self.sha = sha1_hex(self.source)

    @property
    def source(self) -> str:
        return self._source

    def reload(self) -> str:
        """Register the source with the engine and adopt the hash it returns."""
        self.sha = self.redis.script_load(self.source)
        logger.debug(f'Loaded script {self.name} as {self.sha}')
        return self.sha

    # Preloading at startup and recovering from a cache miss are the same operation.
    load = reload

    def call(self, *argv: Any) -> Any:
        try:
            return self._call_reloading_once(*argv)
        except ResponseError as exc:
            diagnostic = parse_script_error(str(exc))
            if diagnostic is not None:
                raise ScriptRuntimeError(diagnostic) from exc
            raise

    def _call_reloading_once(self, *argv: Any) -> Any:
        try:
            return self._call(*argv)
        except ResponseError as exc:
            if not is_noscript_error(exc):
                raise
            logger.debug(f'Script {self.name} not cached by the engine, reloading')
            self.reload()
            return self._call(*argv)

    def _call(self, *argv: Any) -> Any:
        return self.redis.evalsha(self.sha, 0, *argv)

    def __repr__(self) -> str:
        return f'<LuaScript {self.name} sha={self.sha}>'


class LuaPlugin(LuaScript):
    """
    A custom script that runs on top of the engine's helper library.

    The library source and the plugin source are loaded as one script so the
    plugin can call the library's routines. Comment lines are dropped from the
    plugin part only.
    """

    def __init__(
        self,
        name: str,
        redis: Redis,
        plugin_source: str,
        library_source: str,
    ) -> None:
        self._library_source = library_source
        self._plugin_source = _COMMENT_LINES_RE.sub('', plugin_source)
        super().__init__(name, redis, library_source)

    @cached_property
    def source(self) -> str:  # type: ignore[override]
        return '\n\n'.join([self._library_source, self._plugin_source])
