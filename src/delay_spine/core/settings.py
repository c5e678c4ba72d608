"""Scheduler settings.

All tunables of the sweep (key names, interval, lock lease, enqueue
failure policy) live in one validated settings object instead of module
constants. Values come from ``DELAY_SPINE_*`` environment variables or a
``.env`` file; every field has a working default.

Components never import settings themselves: ``create_scheduler()`` reads
the object once and passes plain values into each constructor, so tests can
build components directly against an in-memory store.

Examples:
    >>> from delay_spine.core.settings import SchedulerSettings
    >>> s = SchedulerSettings(interval_seconds=5)
    >>> s.lock_key
    'delay_spine:sweep_lock'

Tags:
    settings, configuration, pydantic, environment, delay-spine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from delay_spine.core.errors import ConfigError


class SchedulerSettings(BaseSettings):
    """Settings for the delayed-task scheduler.

    Fields
    ──────
    redis_url             : Shared store connection URL
    lock_key              : Key whose presence means a sweep is running
    timer_key             : Key holding the last admitted sweep time
    set_name              : Ordered set holding encoded tasks
    interval_seconds      : Minimum time between admitted sweeps
    lock_ttl_seconds      : Lock lease; ``None`` keeps the lock until released
    stuck_after_intervals : Lock age, in intervals, reported as stuck
    key_delimiter         : Field delimiter inside encoded task keys
    escape_delimiters     : Escape delimiter-bearing fields instead of rejecting
    failure_policy        : ``retain`` keeps entries whose enqueue failed, ``drop`` removes
    """

    model_config = SettingsConfigDict(
        env_prefix="DELAY_SPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Shared store ─────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379/0"
    lock_key: str = "delay_spine:sweep_lock"
    timer_key: str = "delay_spine:sweep_timer"
    set_name: str = "delay_spine:tasks"

    # ── Sweep ────────────────────────────────────────────────────
    interval_seconds: float = Field(default=1.0, gt=0)
    lock_ttl_seconds: int | None = Field(default=60, ge=1)
    stuck_after_intervals: int = Field(default=10, ge=1)
    failure_policy: Literal["retain", "drop"] = "retain"

    # ── Task keys ────────────────────────────────────────────────
    key_delimiter: str = "."
    escape_delimiters: bool = True

    # ── Execution backend ────────────────────────────────────────
    celery_task_name: str = "delay_spine.invoke"
    celery_queue: str | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("key_delimiter")
    @classmethod
    def _single_char_delimiter(cls, value: str) -> str:
        if len(value) != 1 or value == "\\":
            raise ValueError("key_delimiter must be a single character other than '\\'")
        return value


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    """Return the process-wide settings instance.

    Raises:
        ConfigError: If the environment or ``.env`` holds invalid values
    """
    try:
        return SchedulerSettings()
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise ConfigError(f"Invalid scheduler settings: {fields}", cause=exc) from exc


def reset_settings() -> None:
    """Drop the cached settings (tests, config reload)."""
    get_settings.cache_clear()


__all__ = ["SchedulerSettings", "get_settings", "reset_settings"]
