"""Unit tests for the worker-channel pub/sub subscriber."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from stablehand.core.engine.subscriber import LOCK_LOST_EVENT, Subscriber, WorkerEvent

pytestmark = pytest.mark.unit

SUBSCRIBER = 'stablehand.core.engine.subscriber'
CHANNEL = 'ql:w:host-1'


def _make_client() -> MagicMock:
    client = MagicMock()
    client.worker_name = 'host-1'
    return client


class TestWorkerEvent:
    def test_from_payload(self) -> None:
        event = WorkerEvent.from_payload({'event': 'lock_lost', 'jid': 'jid-1'})
        assert event == WorkerEvent(event=LOCK_LOST_EVENT, jid='jid-1')
        assert event.is_lock_lost is True

    def test_other_events(self) -> None:
        event = WorkerEvent.from_payload({'event': 'put'})
        assert event.jid is None
        assert event.is_lock_lost is False


class TestBegin:
    def test_subscribes_and_runs_in_thread(self) -> None:
        client = _make_client()
        pubsub = client.redis.pubsub.return_value

        subscriber = Subscriber.start(client, CHANNEL, MagicMock(), poll_timeout=0.1)

        client.redis.pubsub.assert_called_once_with(ignore_subscribe_messages=True)
        pubsub.subscribe.assert_called_once_with(**{CHANNEL: subscriber._on_message})
        pubsub.run_in_thread.assert_called_once_with(
            sleep_time=0.1, daemon=True, exception_handler=subscriber._on_error
        )


class TestOnMessage:
    def test_json_payload_reaches_handler(self) -> None:
        handler = MagicMock()
        subscriber = Subscriber(_make_client(), CHANNEL, handler)

        subscriber._on_message({'data': json.dumps({'event': 'lock_lost', 'jid': 'jid-1'})})
        handler.assert_called_once_with(CHANNEL, {'event': 'lock_lost', 'jid': 'jid-1'})

    @pytest.mark.parametrize('data', ['not json', '[1, 2]', 7, None])
    def test_malformed_message_is_logged_and_dropped(self, data: object) -> None:
        handler = MagicMock()
        subscriber = Subscriber(_make_client(), CHANNEL, handler)

        with patch(f'{SUBSCRIBER}.logger') as logger:
            subscriber._on_message({'data': data})

        handler.assert_not_called()
        logger.warning.assert_called_once()
        assert CHANNEL in logger.warning.call_args.args[0]


class TestOnError:
    def test_logs_and_backs_off(self) -> None:
        subscriber = Subscriber(_make_client(), CHANNEL, MagicMock(), poll_timeout=0.25)
        with patch(f'{SUBSCRIBER}.logger') as logger, patch(f'{SUBSCRIBER}.time.sleep') as sleep:
            subscriber._on_error(ConnectionError('reset'), MagicMock(), MagicMock())

        logger.error.assert_called_once()
        sleep.assert_called_once_with(0.25)


class TestStop:
    def test_stops_thread_and_closes_pubsub(self) -> None:
        client = _make_client()
        pubsub = client.redis.pubsub.return_value
        thread = pubsub.run_in_thread.return_value
        subscriber = Subscriber.start(client, CHANNEL, MagicMock(), poll_timeout=0.5)

        subscriber.stop()

        thread.stop.assert_called_once_with()
        thread.join.assert_called_once_with(timeout=2.0)
        pubsub.close.assert_called_once_with()

    def test_stop_twice_is_harmless(self) -> None:
        client = _make_client()
        pubsub = client.redis.pubsub.return_value
        subscriber = Subscriber.start(client, CHANNEL, MagicMock())

        subscriber.stop()
        subscriber.stop()
        pubsub.close.assert_called_once_with()

    def test_stop_before_begin(self) -> None:
        Subscriber(_make_client(), CHANNEL, MagicMock()).stop()
