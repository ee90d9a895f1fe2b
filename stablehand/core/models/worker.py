# stablehand/core/models/worker.py
from __future__ import annotations

from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stablehand.core.defaults import (
    DEFAULT_MAX_STARTUP_INTERVAL_S,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_SHUTDOWN_TIMEOUT_S,
    MAX_NUM_WORKERS,
)
from stablehand.core.errors import ConfigurationError, ErrorCode, ValidationReport, raise_collected


class WorkerConfig(BaseModel):
    """
    Configuration shared by serial workers and the forking supervisor.

    The supervisor hands the same instance to every child it spawns.
    """

    model_config = ConfigDict(extra='forbid')

    interval: Annotated[float, Field(ge=0)] = Field(
        default=DEFAULT_POLL_INTERVAL_S,
        description='Seconds to sleep after an empty poll or while paused; 0 busy-polls',
    )
    num_workers: int = Field(
        default=1,
        description='Number of child processes the forking worker keeps alive',
    )
    max_startup_interval: Annotated[float, Field(ge=0)] = Field(
        default=DEFAULT_MAX_STARTUP_INTERVAL_S,
        description='Upper bound of the random startup delay of each child',
    )
    shutdown_timeout: Annotated[float, Field(gt=0)] = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT_S,
        description='Seconds to wait for children to exit once shutdown starts',
    )

    @model_validator(mode='after')
    def validate_timing(self) -> Self:
        report = ValidationReport('worker')
        if not 1 <= self.num_workers <= MAX_NUM_WORKERS:
            report.add(
                ConfigurationError(
                    message=f'num_workers must be between 1 and {MAX_NUM_WORKERS}',
                    code=ErrorCode.CONFIG_INVALID_POOL_SIZE,
                    notes=[f'num_workers={self.num_workers}'],
                )
            )
        if self.interval > 0 and self.interval < 0.01:
            report.add(
                ConfigurationError(
                    message='interval must be 0 (busy poll) or at least 10ms',
                    code=ErrorCode.CONFIG_INVALID_INTERVAL,
                    notes=[f'interval={self.interval}s'],
                    help_text='use interval=0 to poll without sleeping',
                )
            )
        if self.num_workers > 1 and self.max_startup_interval > self.shutdown_timeout:
            report.add(
                ConfigurationError(
                    message='max_startup_interval must not exceed shutdown_timeout',
                    code=ErrorCode.CONFIG_INVALID_WORKER,
                    notes=[
                        f'max_startup_interval={self.max_startup_interval}s',
                        f'shutdown_timeout={self.shutdown_timeout}s',
                    ],
                    help_text='children still sleeping at shutdown would otherwise be abandoned',
                )
            )

        raise_collected(report)
        return self
