"""Integration test fixtures: a live Redis at REDIS_URL."""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterator

import pytest
from redis import Redis
from redis.exceptions import RedisError

REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/15')


@pytest.fixture
def redis() -> Iterator[Redis]:
    """Connection to the test database; skips when Redis is not running."""
    conn = Redis.from_url(REDIS_URL, decode_responses=True)
    try:
        conn.ping()
    except RedisError as exc:
        pytest.skip(f'Redis not available at {REDIS_URL}: {exc}')
    yield conn
    conn.close()


@pytest.fixture
def worker_name() -> str:
    return f'it-{uuid.uuid4().hex[:8]}'
