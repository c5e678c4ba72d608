"""
delay-spine - distributed delayed-task scheduling on a shared ordered store.

Register a method call on an addressable object for later, call ``run()``
from as many processes as you like, and due calls are handed to an
execution backend (Celery or in-process) at least once.

Examples:
    >>> from delay_spine import create_scheduler, InMemoryStore
    >>> scheduler = create_scheduler(InMemoryStore(), backend)
    >>> scheduler.schedule(5, "User", "send_welcome", 123)
"""

from delay_spine.core.errors import (
    BackendUnavailableError,
    DelayError,
    InvalidTaskError,
    MalformedEntryError,
    StoreUnavailableError,
)
from delay_spine.core.kv import InMemoryStore, KeyValueStore, RedisStore
from delay_spine.core.scheduling import (
    DelayedScheduler,
    ExecutionBackend,
    SweepResult,
    Task,
    create_scheduler,
)
from delay_spine.core.settings import SchedulerSettings, get_settings

__version__ = "0.1.0"

__all__ = [
    "create_scheduler",
    "DelayedScheduler",
    "ExecutionBackend",
    "SweepResult",
    "Task",
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    "SchedulerSettings",
    "get_settings",
    "DelayError",
    "InvalidTaskError",
    "MalformedEntryError",
    "StoreUnavailableError",
    "BackendUnavailableError",
]
