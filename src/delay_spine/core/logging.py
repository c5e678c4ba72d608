"""
Structured logging for delay-spine.

Every component logs through structlog with snake_case event names and
key/value fields. A sweep binds its ``sweep_id`` into the context for its
whole duration, so one sweep can be followed across the gate, lock and
dispatcher lines even when many processes write to the same aggregator.

Architecture:
    ::

        configure_logging(settings)          # or level=/json_format= overrides
            │
            ▼
        processor chain
          merge_contextvars          ← sweep_id from LogContext
          add_log_level, add_logger_name
          TimeStamper(iso, utc)
          _stamp_service             ← service.name
          _expand_errors             ← DelayError → error.type / error.category / ...
          format_exc_info
          ├── json:    _ecs_rename → JSONRenderer
          └── console: ConsoleRenderer

Event vocabulary:
    task_scheduled, sweep_started, task_dispatched, task_enqueue_failed,
    task_dropped, malformed_entry_skipped, sweep_lock_lost,
    sweep_lock_stuck, sweep_completed, sweep_failed

Examples:
    >>> from delay_spine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=True)
    >>> get_logger(__name__).info("task_scheduled", task_key="10.User.send_welcome.1")

Tags:
    logging, structlog, observability, json-logging, delay-spine

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from delay_spine.core.settings import SchedulerSettings

_service_name = "delay-spine"

# structlog key → ECS field
_ECS_FIELDS = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "logger": "log.logger",
}


def _stamp_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service_name)
    return event_dict


def _expand_errors(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Flatten a ``DelayError`` passed as ``error=`` into searchable fields."""
    from delay_spine.core.errors import DelayError

    error = event_dict.get("error")
    if isinstance(error, DelayError):
        details = error.to_dict()
        event_dict["error"] = details["message"]
        event_dict["error.type"] = details["error_type"]
        event_dict["error.category"] = details["category"]
        event_dict["error.retryable"] = details["retryable"]
        for key, value in details.get("context", {}).items():
            event_dict.setdefault(key, value)
    return event_dict


def _ecs_rename(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for source, target in _ECS_FIELDS.items():
        if source in event_dict:
            event_dict[target] = event_dict.pop(source)
    return event_dict


def build_processors(json_format: bool) -> list[Processor]:
    """The processor chain used by :func:`configure_logging`."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _stamp_service,
        _expand_errors,
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            _ecs_rename,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_logging(
    settings: SchedulerSettings | None = None,
    *,
    level: str | None = None,
    json_format: bool | None = None,
    service: str = "delay-spine",
) -> None:
    """Configure structlog (and stdlib logging for redis/celery) once per process.

    Args:
        settings: Source of ``log_level`` / ``json_logs`` defaults
        level: Overrides the settings level
        json_format: True for JSON, False for console; ``None`` picks JSON
            when stdout is not a terminal
        service: Value of the ``service.name`` field
    """
    global _service_name
    _service_name = service

    if settings is not None:
        level = level or settings.log_level
        json_format = settings.json_logs if json_format is None else json_format
    level = (level or "INFO").upper()
    if json_format is None:
        json_format = not sys.stdout.isatty()

    numeric_level = logging.getLevelName(level)
    structlog.configure(
        processors=build_processors(json_format),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(name)s %(levelname)s %(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Module logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**fields: Any) -> None:
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for a block and restore the previous values on exit.

    Nested blocks that bind the same key get their own value inside and the
    outer value back afterwards.

    Example:
        with LogContext(sweep_id="3f2a9c0b71de"):
            logger.info("sweep_started")
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "build_processors",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
