"""Unit tests for stablehand.core.engine.client."""

from __future__ import annotations

import os
import socket
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from stablehand.core.engine.client import Client
from stablehand.core.engine.queue import Queue
from stablehand.core.engine.scripts import sha1_hex
from stablehand.core.models.redis import RedisConfig

pytestmark = pytest.mark.unit

SOURCE = "return 'engine'"
CLIENT = 'stablehand.core.engine.client'


def _make_client(worker_name: str | None = 'host-1') -> tuple[Client, MagicMock]:
    redis = MagicMock()
    return Client(redis, SOURCE, worker_name=worker_name), redis


class TestCall:
    def test_prepends_command_and_current_time(self) -> None:
        client, redis = _make_client()
        redis.evalsha.return_value = 'ok'

        with patch(f'{CLIENT}.time.time', return_value=1700000000.25):
            assert client.call('complete', 'jid-1', 'host-1') == 'ok'

        redis.evalsha.assert_called_once_with(
            sha1_hex(SOURCE), 0, 'complete', 1700000000.25, 'jid-1', 'host-1'
        )

    def test_deregister_workers(self) -> None:
        client, redis = _make_client()
        client.deregister_workers('host-1', 'host-2')
        args = redis.evalsha.call_args.args
        assert args[2] == 'worker.deregister'
        assert args[4:] == ('host-1', 'host-2')

    def test_load_script(self) -> None:
        client, redis = _make_client()
        redis.script_load.return_value = 'a' * 40
        assert client.load_script() == 'a' * 40
        assert client.script.sha == 'a' * 40


class TestWorkerName:
    def test_fixed_name(self) -> None:
        client, _ = _make_client('billing-7')
        assert client.worker_name == 'billing-7'

    def test_default_is_host_and_pid(self) -> None:
        client, _ = _make_client(None)
        assert client.worker_name == f'{socket.gethostname()}-{os.getpid()}'

    def test_default_follows_pid_after_fork(self) -> None:
        client, _ = _make_client(None)
        with patch(f'{CLIENT}.os.getpid', return_value=4242):
            assert client.worker_name.endswith('-4242')


class TestQueues:
    def test_queue_is_cached(self) -> None:
        client, _ = _make_client()
        queue = client.queue('images')
        assert isinstance(queue, Queue)
        assert client.queue('images') is queue
        assert client.queue('email') is not queue


class TestReconnect:
    def test_disconnects_pool(self) -> None:
        client, redis = _make_client()
        client.reconnect()
        redis.connection_pool.disconnect.assert_called_once_with()


class TestFromConfig:
    def test_builds_redis_from_url(self, tmp_path: Path) -> None:
        script = tmp_path / 'qless.lua'
        script.write_text(SOURCE, encoding='utf-8')
        config = RedisConfig(
            url='redis://:pw@localhost:6379/2',
            script_path=str(script),
            worker_name='w-1',
            socket_timeout=2.5,
        )

        with patch(f'{CLIENT}.Redis') as redis_cls:
            client = Client.from_config(config)

        redis_cls.from_url.assert_called_once_with(
            'redis://:pw@localhost:6379/2', decode_responses=True, socket_timeout=2.5
        )
        assert client.redis is redis_cls.from_url.return_value
        assert client.worker_name == 'w-1'
        assert client.script.sha == sha1_hex(SOURCE)

    def test_masks_password_in_log(self, tmp_path: Path) -> None:
        script = tmp_path / 'qless.lua'
        script.write_text(SOURCE, encoding='utf-8')
        config = RedisConfig(url='redis://:hunter2@localhost:6379/0', script_path=str(script))

        with patch(f'{CLIENT}.Redis'), patch(f'{CLIENT}.logger') as logger:
            Client.from_config(config)

        message = logger.debug.call_args.args[0]
        assert 'hunter2' not in message
        assert ':***@' in message
