# stablehand/core/engine/failure.py
"""Turn an exception raised by a job into the failure record the engine stores."""

from __future__ import annotations

import os
import traceback
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from stablehand.core.engine.job import Job

_STABLEHAND_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

MAX_MESSAGE_LENGTH = 10_000


class Failure(NamedTuple):
    group: str
    message: str


class FailureFormatter:
    """
    group:   '<job class>:<exception class>', so failures of one kind cluster
    message: the exception text (truncated), a blank line, then the trace
             with library frames removed and cwd shortened to '.'
    """

    def __init__(self, max_message_length: int = MAX_MESSAGE_LENGTH) -> None:
        self.max_message_length = max_message_length

    def format(self, job: Job, error: BaseException) -> Failure:
        group = f'{job.klass_name}:{type(error).__qualname__}'
        message = f'{self._truncate(str(error))}\n\n{self.format_trace(error)}'
        return Failure(group=group, message=message)

    def format_trace(self, error: BaseException) -> str:
        frames = traceback.extract_tb(error.__traceback__)
        user_frames = [f for f in frames if not f.filename.startswith(_STABLEHAND_PKG_DIR)]
        cwd = os.getcwd()
        lines: list[str] = []
        for frame in user_frames or frames:
            filename = frame.filename
            if filename.startswith(cwd):
                filename = '.' + filename[len(cwd):]
            lines.append(f'{filename}:{frame.lineno}:in `{frame.name}`')
        return '\n'.join(lines)

    def _truncate(self, text: str) -> str:
        if len(text) <= self.max_message_length:
            return text
        return text[: self.max_message_length] + ' [truncated]'


failure_formatter = FailureFormatter()
