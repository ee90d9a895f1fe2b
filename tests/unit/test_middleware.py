"""Unit tests for the middleware chain and RedisReconnect."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
from redis import Redis

from stablehand.core.engine.job import Job
from stablehand.core.worker.middleware import Middleware, Perform, RedisReconnect, build_chain
from stablehand.core.worker.state import CurrentJob

pytestmark = pytest.mark.unit


def _redis() -> MagicMock:
    redis = MagicMock(spec=Redis)
    redis.connection_pool = MagicMock()
    return redis


class _Recorder(Middleware):
    def __init__(self, name: str, calls: list[str]) -> None:
        self.name = name
        self.calls = calls

    def around_perform(self, job: Job, call_next: Perform) -> Any:
        self.calls.append(f'{self.name}:before')
        result = call_next(job)
        self.calls.append(f'{self.name}:after')
        return result


class TestBuildChain:
    def test_empty_chain_is_perform(self) -> None:
        perform = MagicMock(return_value='done')
        assert build_chain([], perform) is perform

    def test_first_middleware_is_outermost(self) -> None:
        calls: list[str] = []

        def perform(job: Any) -> str:
            calls.append('perform')
            return 'done'

        chain = build_chain([_Recorder('outer', calls), _Recorder('inner', calls)], perform)

        assert chain(MagicMock()) == 'done'
        assert calls == ['outer:before', 'inner:before', 'perform', 'inner:after', 'outer:after']

    def test_middleware_can_short_circuit(self) -> None:
        class Skip(Middleware):
            def around_perform(self, job: Job, call_next: Perform) -> Any:
                return 'skipped'

        perform = MagicMock()
        assert build_chain([Skip()], perform)(MagicMock()) == 'skipped'
        perform.assert_not_called()

    def test_base_middleware_passes_through(self) -> None:
        perform = MagicMock(return_value=3)
        job = MagicMock()
        assert build_chain([Middleware()], perform)(job) == 3
        perform.assert_called_once_with(job)
        Middleware().after_fork(MagicMock())


class TestRedisReconnect:
    def test_disconnects_then_calls_next(self) -> None:
        order: list[str] = []
        first, second = _redis(), _redis()
        first.connection_pool.disconnect.side_effect = lambda: order.append('first')
        second.connection_pool.disconnect.side_effect = lambda: order.append('second')

        def call_next(job: Any) -> str:
            order.append('perform')
            return 'ok'

        middleware = RedisReconnect(first, second)
        assert middleware.around_perform(MagicMock(), call_next) == 'ok'
        assert order == ['first', 'second', 'perform']

    def test_selector_returning_one_connection(self) -> None:
        selected = _redis()
        unused = _redis()
        job = MagicMock()
        middleware = RedisReconnect(unused, selector=lambda j: selected)

        middleware.around_perform(job, MagicMock())

        selected.connection_pool.disconnect.assert_called_once_with()
        unused.connection_pool.disconnect.assert_not_called()

    def test_selector_returning_many(self) -> None:
        a, b = _redis(), _redis()
        middleware = RedisReconnect(selector=lambda j: [a, b])
        middleware.around_perform(MagicMock(), MagicMock())
        a.connection_pool.disconnect.assert_called_once_with()
        b.connection_pool.disconnect.assert_called_once_with()

    def test_repr(self) -> None:
        assert repr(RedisReconnect()) == 'RedisReconnect'


class TestCurrentJob:
    def test_set_get_clear(self) -> None:
        current = CurrentJob()
        job = MagicMock()
        assert current.get() is None

        current.set(job)
        assert current.get() is job
        with current.with_job() as held:
            assert held is job

        current.clear()
        assert current.get() is None
