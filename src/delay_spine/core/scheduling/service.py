"""Delayed scheduler service - the public entry points.

Manifesto:
    Application code needs exactly two calls: ``schedule()`` to register a
    method call on an addressable object for later, and ``run()`` to be
    invoked often, from anywhere, by anything. Every process may call
    ``run()`` concurrently; the gate collapses calls to one attempt per
    interval and the lock admits one sweep at a time.

Tags:
    delay-spine, scheduling, orchestrator, service

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  run(now)                                                                     │
│                                                                               │
│   TriggerGate.try_admit(now) ── False ──► return (not an error)              │
│          │ True                                                               │
│          ▼                                                                    │
│   SweepLock.try_acquire(now) ── None ───► stuck check, return                 │
│          │ True                                                               │
│          ▼                                                                    │
│   ┌──────────────────────────────────────────────┐                           │
│   │ Dispatcher.run_sweep(now, fence)             │                           │
│   │   DelayedTaskStore.pop_due(now)              │                           │
│   │   for entry: backend.enqueue → tasks.remove  │                           │
│   └──────────────────────────────────────────────┘                           │
│          │  (finally)                                                         │
│          ▼                                                                    │
│   SweepLock.release(token)                                                    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from functools import partial
from typing import Any
from uuid import uuid4

from delay_spine.core.errors import DelayError
from delay_spine.core.logging import LogContext, get_logger

from .dispatcher import Dispatcher
from .gate import TriggerGate
from .lock_manager import SweepLock
from .models import LockInfo, SweepResult, Task
from .protocol import SweepDriver
from .repository import DelayedTaskStore

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Per-process statistics for the scheduler service."""

    run_calls: int = 0
    sweeps: int = 0
    lock_misses: int = 0
    tasks_scheduled: int = 0
    tasks_dispatched: int = 0
    tasks_failed: int = 0
    tasks_dropped: int = 0
    malformed_seen: int = 0
    aborted_sweeps: int = 0
    last_sweep_at: float | None = None
    last_error: str | None = None


@dataclass
class SchedulerHealth:
    """Health status for the scheduler service."""

    healthy: bool
    store_reachable: bool
    pending: int = 0
    last_checked_at: float | None = None
    lock_holder: LockInfo | None = None
    lock_stuck: bool = False
    driver: dict[str, Any] | None = None
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "store_reachable": self.store_reachable,
            "pending": self.pending,
            "last_checked_at": self.last_checked_at,
            "lock_holder": (
                {"owner": self.lock_holder.owner, "acquired_at": self.lock_holder.acquired_at}
                if self.lock_holder
                else None
            ),
            "lock_stuck": self.lock_stuck,
            "driver": self.driver,
            "stats": {
                "run_calls": self.stats.run_calls,
                "sweeps": self.stats.sweeps,
                "lock_misses": self.stats.lock_misses,
                "tasks_dispatched": self.stats.tasks_dispatched,
                "tasks_failed": self.stats.tasks_failed,
                "malformed_seen": self.stats.malformed_seen,
            },
        }


class DelayedScheduler:
    """Schedules delayed method calls and sweeps due ones to the backend.

    Example:
        >>> from delay_spine.core.scheduling import create_scheduler
        >>> scheduler = create_scheduler(store, backend)
        >>> scheduler.schedule(300, "User", "send_welcome", 123)
        >>> scheduler.run()        # call often, from any process
    """

    def __init__(
        self,
        gate: TriggerGate,
        lock: SweepLock,
        tasks: DelayedTaskStore,
        dispatcher: Dispatcher,
        *,
        stuck_after_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize scheduler service.

        Args:
            gate: Sweep throttle
            lock: Sweep mutual exclusion
            tasks: Delayed task repository
            dispatcher: Hands due tasks to the execution backend
            stuck_after_seconds: Lock age reported as stuck (default: 10 intervals)
            clock: Source of "now" when callers pass none
        """
        self.gate = gate
        self.lock = lock
        self.tasks = tasks
        self.dispatcher = dispatcher
        self.stuck_after_seconds = (
            stuck_after_seconds if stuck_after_seconds is not None else gate.interval * 10
        )
        self._clock = clock
        self._stats = SchedulerStats()
        self._driver: SweepDriver | None = None

    # === Scheduling ===

    def schedule(
        self,
        delay: float | timedelta,
        target_type: str,
        method_name: str,
        target_id: str | int,
        *,
        now: float | None = None,
    ) -> Task:
        """Run ``method_name`` on ``target_type``/``target_id`` after ``delay``.

        The due time is whole seconds: ``floor(now + delay)``.

        Raises:
            InvalidTaskError: If the fields cannot be encoded
            StoreUnavailableError: If the store is unreachable
        """
        seconds = delay.total_seconds() if isinstance(delay, timedelta) else float(delay)
        base = self._clock() if now is None else now
        return self.schedule_at(math.floor(base + seconds), target_type, method_name, target_id)

    def schedule_at(
        self,
        due_at: int,
        target_type: str,
        method_name: str,
        target_id: str | int,
    ) -> Task:
        """Run ``method_name`` on ``target_type``/``target_id`` at ``due_at``."""
        task = self.tasks.schedule(due_at, target_type, method_name, target_id)
        self._stats.tasks_scheduled += 1
        return task

    # === Sweep ===

    def run(self, now: float | None = None) -> SweepResult:
        """Attempt one sweep at ``now`` (current time if omitted).

        Returns immediately when the gate refuses or the lock is held
        elsewhere; neither is an error. Store errors propagate, with the
        sweep id added to their context.
        """
        now = self._clock() if now is None else float(now)
        result = SweepResult(now=now)
        self._stats.run_calls += 1

        if not self.gate.try_admit(now):
            return result
        result.admitted = True

        token = self.lock.try_acquire(now)
        if token is None:
            self._stats.lock_misses += 1
            self._warn_if_stuck(now)
            return result
        result.lock_acquired = True
        result.sweep_id = uuid4().hex[:12]

        with LogContext(sweep_id=result.sweep_id):
            logger.debug("sweep_started", now=now)
            try:
                self.dispatcher.run_sweep(now, result, fence=partial(self.lock.is_held, token))
            except Exception as exc:
                if isinstance(exc, DelayError):
                    exc.with_context(sweep_id=result.sweep_id)
                self._stats.last_error = str(exc)
                logger.error("sweep_failed", error=str(exc))
                raise
            finally:
                self.lock.release(token)

            self._record(result)
            logger.info(
                "sweep_completed",
                due=result.due,
                dispatched=result.dispatched,
                failed=result.failed,
                dropped=result.dropped,
                malformed=result.malformed,
                aborted=result.aborted,
            )
        return result

    def _warn_if_stuck(self, now: float) -> None:
        info = self.lock.holder()
        if info is not None and info.held_for(now) > self.stuck_after_seconds:
            logger.warning(
                "sweep_lock_stuck",
                owner=info.owner,
                held_for=round(info.held_for(now), 3),
                threshold=self.stuck_after_seconds,
            )

    def _record(self, result: SweepResult) -> None:
        self._stats.sweeps += 1
        self._stats.tasks_dispatched += result.dispatched
        self._stats.tasks_failed += result.failed
        self._stats.tasks_dropped += result.dropped
        self._stats.malformed_seen += result.malformed
        self._stats.aborted_sweeps += int(result.aborted)
        self._stats.last_sweep_at = result.now

    # === Lifecycle ===

    def start(self, driver: SweepDriver | None = None, interval_seconds: float | None = None) -> None:
        """Call ``run()`` on a cadence in this process."""
        if self._driver is not None:
            logger.warning("scheduler_already_started")
            return
        if driver is None:
            from .thread_backend import ThreadSweepDriver

            driver = ThreadSweepDriver()
        self._driver = driver
        driver.start(self.run, interval_seconds or self.gate.interval)

    def stop(self) -> None:
        if self._driver is None:
            return
        self._driver.stop()
        self._driver = None

    @property
    def is_running(self) -> bool:
        return self._driver is not None

    # === Health & Stats ===

    def health(self, now: float | None = None) -> SchedulerHealth:
        now = self._clock() if now is None else now
        reachable = self.tasks.store.ping()
        if not reachable:
            return SchedulerHealth(healthy=False, store_reachable=False, stats=self._stats)

        holder = self.lock.holder()
        stuck = holder is not None and holder.held_for(now) > self.stuck_after_seconds
        return SchedulerHealth(
            healthy=not stuck,
            store_reachable=True,
            pending=self.tasks.count(),
            last_checked_at=self.gate.last_checked_at(),
            lock_holder=holder,
            lock_stuck=stuck,
            driver=self._driver.health() if self._driver else None,
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()


__all__ = ["DelayedScheduler", "SchedulerStats", "SchedulerHealth"]
