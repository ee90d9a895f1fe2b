"""Unit tests for stablehand logging module."""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator

import pytest

from stablehand.core.logging import ColoredFormatter, get_logger, set_default_level, setup_logging

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _restore_default_level() -> Iterator[None]:
    """Save and restore the module-level _default_level after each test."""
    from stablehand.core import logging as stablehand_logging

    original = stablehand_logging._default_level
    yield
    set_default_level(original)


def _unique_component() -> str:
    return f'test_{uuid.uuid4().hex[:8]}'


class TestSetDefaultLevel:
    """Tests for set_default_level()."""

    def test_changes_module_variable(self) -> None:
        from stablehand.core import logging as stablehand_logging

        set_default_level(logging.DEBUG)
        assert stablehand_logging._default_level == logging.DEBUG

        set_default_level(logging.WARNING)
        assert stablehand_logging._default_level == logging.WARNING

    def test_new_logger_uses_default_level(self) -> None:
        set_default_level(logging.WARNING)
        logger = get_logger(_unique_component())
        assert logger.level == logging.WARNING

    def test_logger_handler_respects_default_level(self) -> None:
        set_default_level(logging.ERROR)
        logger = get_logger(_unique_component())

        assert len(logger.handlers) > 0
        for handler in logger.handlers:
            assert handler.level == logging.ERROR


class TestGetLogger:
    def test_namespaced_under_stablehand(self) -> None:
        component = _unique_component()
        assert get_logger(component).name == f'stablehand.{component}'

    def test_does_not_propagate(self) -> None:
        assert get_logger(_unique_component()).propagate is False

    def test_repeated_calls_do_not_stack_handlers(self) -> None:
        component = _unique_component()
        get_logger(component)
        logger = get_logger(component)
        assert len(logger.handlers) == 1


class TestSetupLogging:
    def test_updates_existing_loggers(self) -> None:
        logger = get_logger(_unique_component())
        setup_logging('debug')

        assert logger.level == logging.DEBUG
        assert all(handler.level == logging.DEBUG for handler in logger.handlers)

    def test_accepts_int_level(self) -> None:
        from stablehand.core import logging as stablehand_logging

        setup_logging(logging.WARNING)
        assert stablehand_logging._default_level == logging.WARNING

    def test_unknown_name_falls_back_to_info(self) -> None:
        from stablehand.core import logging as stablehand_logging

        setup_logging('chatty')
        assert stablehand_logging._default_level == logging.INFO

    def test_leaves_foreign_loggers_alone(self) -> None:
        foreign = logging.getLogger(f'elsewhere.{_unique_component()}')
        foreign.setLevel(logging.CRITICAL)
        setup_logging('debug')
        assert foreign.level == logging.CRITICAL


class TestColoredFormatter:
    def _record(self, name: str, level: int = logging.WARNING) -> logging.LogRecord:
        return logging.LogRecord(
            name=name,
            level=level,
            pathname=__file__,
            lineno=1,
            msg='Sending %s to children',
            args=('QUIT',),
            exc_info=None,
        )

    def test_includes_component_pid_level_and_message(self) -> None:
        record = self._record('stablehand.supervisor')
        formatted = ColoredFormatter().format(record)

        assert '[supervisor]' in formatted
        assert f'[{record.process}]' in formatted
        assert '[WARNING]' in formatted
        assert 'Sending QUIT to children' in formatted

    def test_level_color_applied(self) -> None:
        formatted = ColoredFormatter().format(self._record('stablehand.worker', logging.ERROR))
        assert ColoredFormatter.LEVEL_COLORS['ERROR'] in formatted

    def test_exception_appended(self) -> None:
        try:
            raise RuntimeError('boom')
        except RuntimeError:
            record = self._record('stablehand.worker')
            record.exc_info = sys.exc_info()

        formatted = ColoredFormatter().format(record)
        assert 'RuntimeError: boom' in formatted
