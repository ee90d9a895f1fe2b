"""Unit tests for WorkerConfig and RedisConfig validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from stablehand.core.defaults import (
    DEFAULT_MAX_STARTUP_INTERVAL_S,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_SHUTDOWN_TIMEOUT_S,
)
from stablehand.core.errors import ConfigurationError, ErrorCode, MultipleValidationErrors
from stablehand.core.models.redis import RedisConfig
from stablehand.core.models.worker import WorkerConfig

pytestmark = pytest.mark.unit


class TestWorkerConfig:
    def test_defaults(self) -> None:
        config = WorkerConfig()
        assert config.interval == DEFAULT_POLL_INTERVAL_S
        assert config.num_workers == 1
        assert config.max_startup_interval == DEFAULT_MAX_STARTUP_INTERVAL_S
        assert config.shutdown_timeout == DEFAULT_SHUTDOWN_TIMEOUT_S

    def test_zero_interval_is_busy_poll(self) -> None:
        assert WorkerConfig(interval=0).interval == 0

    def test_sub_10ms_interval_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            WorkerConfig(interval=0.005)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_INTERVAL

    def test_negative_interval_rejected_by_field(self) -> None:
        with pytest.raises(ValidationError):
            WorkerConfig(interval=-1)

    def test_pool_size_bounds(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            WorkerConfig(num_workers=0)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_POOL_SIZE

        with pytest.raises(ConfigurationError):
            WorkerConfig(num_workers=100_000)

    def test_startup_interval_longer_than_shutdown_timeout_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            WorkerConfig(num_workers=4, max_startup_interval=60, shutdown_timeout=30)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_WORKER

    def test_startup_interval_ignored_for_single_process(self) -> None:
        config = WorkerConfig(num_workers=1, max_startup_interval=60, shutdown_timeout=30)
        assert config.max_startup_interval == 60

    def test_zero_shutdown_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WorkerConfig(shutdown_timeout=0)

    def test_unknown_field_rejected(self) -> None:
        """Log levels belong to setup_logging, not to the worker config."""
        assert 'log_level' not in WorkerConfig.model_fields
        with pytest.raises(ValidationError, match='log_level'):
            WorkerConfig(log_level=10)  # type: ignore[call-arg]

    def test_several_problems_reported_together(self) -> None:
        with pytest.raises(MultipleValidationErrors) as exc_info:
            WorkerConfig(interval=0.001, num_workers=0)

        codes = {error.code for error in exc_info.value.report.errors}
        assert codes == {ErrorCode.CONFIG_INVALID_INTERVAL, ErrorCode.CONFIG_INVALID_POOL_SIZE}


class TestRedisConfig:
    def test_defaults(self) -> None:
        config = RedisConfig()
        assert config.url == 'redis://localhost:6379/0'
        assert config.script_path is None
        assert config.worker_name is None

    @pytest.mark.parametrize(
        'url',
        ['redis://localhost:6379/0', 'rediss://cache:6380/1', 'unix:///tmp/redis.sock'],
    )
    def test_supported_schemes(self, url: str) -> None:
        assert RedisConfig(url=url).url == url

    def test_unsupported_scheme_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            RedisConfig(url='http://localhost:6379')
        assert exc_info.value.code == ErrorCode.REDIS_INVALID_URL
        assert 'got: http://...' in exc_info.value.notes

    def test_missing_script_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            RedisConfig(script_path=str(tmp_path / 'missing.lua'))
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_SCRIPT_PATH

    def test_read_script(self, tmp_path: Path) -> None:
        script = tmp_path / 'qless.lua'
        script.write_text("return 'ok'\n", encoding='utf-8')

        config = RedisConfig(script_path=str(script))
        assert config.read_script() == "return 'ok'\n"

    def test_read_script_without_path(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            RedisConfig().read_script()
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_SCRIPT_PATH
