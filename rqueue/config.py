"""
ClientSettings — validated QueueClient configuration.

Settings load from RQUEUE_* environment variables via pydantic-settings;
keyword arguments win over the environment:

    RQUEUE_QUEUE_NAME=emails
    RQUEUE_NAMESPACE=myapp
    RQUEUE_HOST=redis.internal          (default 127.0.0.1)
    RQUEUE_PORT=6380                    (default 6379)
    RQUEUE_POLL_INTERVALS=100,500,2000  (milliseconds)
    RQUEUE_NOT_READY_DELAY=1            (seconds, or ISO 8601 like PT1S)
    RQUEUE_RETRY_MIN_DELAY=1            (seconds)
    RQUEUE_RETRY_BUDGET=60              (seconds, default 180)
    RQUEUE_HEALTH_CHECK_INTERVAL=10     (seconds, default 5)

    settings = ClientSettings()
    client = QueueClient.from_settings(settings, structlog.get_logger())

Use ClientSettings(_env_prefix="APP_") to read a different prefix.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from rqueue.core.backoff import DEFAULT_INTERVALS


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RQUEUE_", frozen=True)

    queue_name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    host: str = "127.0.0.1"
    port: int = Field(default=6379, ge=1, le=65535)
    poll_intervals: Annotated[tuple[timedelta, ...], NoDecode] = DEFAULT_INTERVALS
    not_ready_delay: timedelta = timedelta(seconds=1)
    retry_min_delay: timedelta = timedelta(seconds=1)
    retry_budget: timedelta = timedelta(minutes=3)
    health_check_interval: timedelta = timedelta(seconds=5)

    @field_validator("poll_intervals", mode="before")
    @classmethod
    def _parse_interval_list(cls, v: Any) -> Any:
        # "100,500,2000" -> milliseconds
        if isinstance(v, str):
            return tuple(
                timedelta(milliseconds=int(part))
                for part in v.split(",")
                if part.strip()
            )
        return v

    @field_validator("poll_intervals")
    @classmethod
    def _check_intervals(cls, v: tuple[timedelta, ...]) -> tuple[timedelta, ...]:
        if not v:
            raise ValueError("poll_intervals must not be empty")
        if any(i <= timedelta(0) for i in v):
            raise ValueError("poll_intervals must be positive")
        return v

    @field_validator(
        "not_ready_delay",
        "retry_min_delay",
        "retry_budget",
        "health_check_interval",
        mode="before",
    )
    @classmethod
    def _parse_seconds(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return timedelta(seconds=float(v))
            except ValueError:
                return v
        return v
