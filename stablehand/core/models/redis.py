import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from stablehand.core.errors import ConfigurationError, ErrorCode

_SUPPORTED_SCHEMES = ('redis://', 'rediss://', 'unix://')


class RedisConfig(BaseModel):
    url: str = Field(default='redis://localhost:6379/0', description='URL of the Redis engine')
    script_path: Optional[str] = Field(
        default=None, description='Path of the engine Lua script to load'
    )
    worker_name: Optional[str] = Field(
        default=None,
        description='Fixed worker identity; defaults to <hostname>-<pid> of each process',
    )
    socket_timeout: Optional[float] = Field(
        default=None, description='Socket timeout in seconds for engine calls'
    )

    @field_validator('url')
    def validate_url(cls, v: str) -> str:
        if not v.startswith(_SUPPORTED_SCHEMES):
            raise ConfigurationError(
                message='invalid redis URL scheme',
                code=ErrorCode.REDIS_INVALID_URL,
                notes=[f"got: {v.split('://')[0] if '://' in v else v[:20]}://..."],
                help_text="use 'redis://host:port/db', 'rediss://...' or 'unix:///path'",
            )
        return v

    @field_validator('script_path')
    def validate_script_path(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not os.path.isfile(v):
            raise ConfigurationError(
                message='engine script not found',
                code=ErrorCode.CONFIG_INVALID_SCRIPT_PATH,
                notes=[f'path: {v!r}'],
                help_text='point script_path at the engine Lua source (e.g. qless.lua)',
            )
        return v

    def read_script(self) -> str:
        """Return the engine script source."""
        if self.script_path is None:
            raise ConfigurationError(
                message='no engine script configured',
                code=ErrorCode.CONFIG_INVALID_SCRIPT_PATH,
                help_text='pass --script PATH or set script_path',
            )
        with open(self.script_path, encoding='utf-8') as fh:
            return fh.read()
