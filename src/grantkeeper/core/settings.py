from __future__ import annotations

from datetime import timedelta

from pydantic import Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CleanupSettings(BaseSettings):
    """Settings for the expired grant sweeper.

    Environment variables use the prefix: GRANTKEEPER_CLEANUP_
    Durations are ISO 8601 (PT10M) or HH:MM:SS strings.
    Example: GRANTKEEPER_CLEANUP_INTERVAL=PT10M
    """

    model_config = SettingsConfigDict(env_prefix="GRANTKEEPER_CLEANUP_", extra="ignore", frozen=True)

    enabled: bool = Field(default=False)
    interval: timedelta = Field(default=timedelta(hours=1))
    startup_delay: timedelta = Field(default=timedelta(0))
    batch_size: PositiveInt = Field(default=100)
    clean_grants: bool = Field(default=True)
    clean_device_codes: bool = Field(default=True)
    max_batches: PositiveInt = Field(default=100)

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            msg = "interval must be greater than zero"
            raise ValueError(msg)
        return v

    @field_validator("startup_delay")
    @classmethod
    def validate_startup_delay(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            msg = "startup_delay must not be negative"
            raise ValueError(msg)
        return v
