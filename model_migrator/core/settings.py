"""Timing settings for migration runs.

Provides centralized polling and request timeout configuration using Pydantic
BaseSettings with environment variable support for operational tuning.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MigrationSettings(BaseSettings):
    """Polling and request timing configuration."""

    poll_interval: float = Field(
        1.0,
        ge=0,
        alias="MIGRATOR_POLL_INTERVAL",
        description="Seconds between copy operation status checks",
    )

    poll_timeout: float = Field(
        3600.0,
        gt=0,
        alias="MIGRATOR_POLL_TIMEOUT",
        description="Maximum seconds to wait for one copy operation",
    )

    max_poll_attempts: int | None = Field(
        None,
        gt=0,
        alias="MIGRATOR_MAX_POLL_ATTEMPTS",
        description="Optional cap on status checks per copy operation",
    )

    request_timeout: float = Field(
        30.0,
        gt=0,
        alias="MIGRATOR_REQUEST_TIMEOUT",
        description="HTTP request timeout in seconds",
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)
