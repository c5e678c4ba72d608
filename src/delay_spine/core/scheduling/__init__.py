"""Delayed-task scheduling for delay-spine.

Manifesto:
    "Call ``send_welcome`` on User 123 in five minutes" should need nothing
    but the shared store the application already has. Tasks live in an
    ordered set scored by due time; any process may call ``run()`` as often
    as it likes, and a throttle plus a lease-based lock turn those calls
    into at most one sweep per interval across the whole deployment.

┌──────────────────────────────────────────────────────────────────────────────┐
│  DELAY SPINE SCHEDULER                                                        │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from delay_spine.core.kv import RedisStore                         │   │
│  │   from delay_spine.core.scheduling import create_scheduler           │   │
│  │   from delay_spine.execution import CeleryExecutionBackend           │   │
│  │                                                                      │   │
│  │   scheduler = create_scheduler(                                      │   │
│  │       RedisStore("redis://localhost:6379/0"),                        │   │
│  │       CeleryExecutionBackend(celery_app),                            │   │
│  │   )                                                                  │   │
│  │   scheduler.schedule(300, "User", "send_welcome", 123)               │   │
│  │   scheduler.run()     # from a request hook, a timer, a driver...    │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Components:                                                                  │
│   TriggerGate      shared "last checked" throttle                            │
│   SweepLock        set-if-absent lease lock with owner token                 │
│   DelayedTaskStore ordered set of encoded task keys                          │
│   Dispatcher       enqueue then remove, oldest first                         │
│   DelayedScheduler schedule() / run() / health()                             │
│                                                                               │
│  Shared store keys (defaults):                                                │
│   delay_spine:sweep_timer   last admitted sweep time                         │
│   delay_spine:sweep_lock    present while a sweep runs                       │
│   delay_spine:tasks         ordered set, score = due time                    │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Treating the gate as mutual exclusion
    ✅ Only ``SweepLock`` guarantees one sweep at a time
    ❌ Removing an entry before its enqueue attempt
    ✅ ``Dispatcher`` removes after hand-off, so crashes re-dispatch
    ❌ Constructing scheduler components individually in application code
    ✅ ``create_scheduler(store, backend)`` factory function

Tags:
    delay-spine, scheduling, delayed-tasks, distributed-locks, redis

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

import time
from collections.abc import Callable

from delay_spine.core.kv import KeyValueStore
from delay_spine.core.settings import SchedulerSettings, get_settings

from .dispatcher import Dispatcher
from .gate import TriggerGate
from .keys import TaskKeyCodec
from .lock_manager import SweepLock
from .models import DueEntry, FailurePolicy, LockInfo, SweepResult, Task
from .protocol import BackendHealth, ExecutionBackend, SweepDriver
from .repository import DelayedTaskStore
from .service import DelayedScheduler, SchedulerHealth, SchedulerStats
from .thread_backend import ThreadSweepDriver

__all__ = [
    # Models
    "Task",
    "DueEntry",
    "LockInfo",
    "SweepResult",
    "FailurePolicy",
    # Components
    "TaskKeyCodec",
    "TriggerGate",
    "SweepLock",
    "DelayedTaskStore",
    "Dispatcher",
    # Protocols
    "ExecutionBackend",
    "SweepDriver",
    "BackendHealth",
    # Service
    "DelayedScheduler",
    "SchedulerStats",
    "SchedulerHealth",
    "ThreadSweepDriver",
    "create_scheduler",
]


def create_scheduler(
    store: KeyValueStore,
    backend: ExecutionBackend,
    settings: SchedulerSettings | None = None,
    instance_id: str | None = None,
    clock: Callable[[], float] = time.time,
) -> DelayedScheduler:
    """Factory function to create a fully wired scheduler.

    Args:
        store: Shared store (RedisStore in production)
        backend: Execution backend receiving due tasks
        settings: Scheduler settings (default: ``get_settings()``)
        instance_id: Identifies this process in the sweep lock
        clock: Source of "now" for schedule()/run() calls without one

    Returns:
        Configured DelayedScheduler

    Example:
        >>> scheduler = create_scheduler(InMemoryStore(), backend)
        >>> scheduler.run()
    """
    settings = settings or get_settings()

    codec = TaskKeyCodec(settings.key_delimiter, escape=settings.escape_delimiters)
    gate = TriggerGate(store, settings.timer_key, settings.interval_seconds)
    lock = SweepLock(
        store,
        settings.lock_key,
        ttl_seconds=settings.lock_ttl_seconds,
        instance_id=instance_id,
    )
    tasks = DelayedTaskStore(store, settings.set_name, codec)
    dispatcher = Dispatcher(
        tasks,
        backend,
        policy=FailurePolicy(settings.failure_policy),
    )

    return DelayedScheduler(
        gate=gate,
        lock=lock,
        tasks=tasks,
        dispatcher=dispatcher,
        stuck_after_seconds=settings.interval_seconds * settings.stuck_after_intervals,
        clock=clock,
    )
