"""Contracts between the scheduling core and its collaborators.

┌──────────────────────────────────────────────────────────────────────────────┐
│  COLLABORATOR PROTOCOLS                                                       │
│                                                                               │
│   ┌─────────────────┐        run()        ┌──────────────────────┐           │
│   │  SweepDriver    │ ──────────────────► │  DelayedScheduler    │           │
│   │  (cadence)      │                     │                      │           │
│   └─────────────────┘                     │  gate → lock →       │           │
│                                           │  pop_due → dispatch  │           │
│                                           └──────────┬───────────┘           │
│                                                      │ enqueue()             │
│                                                      ▼                       │
│                                           ┌──────────────────────┐           │
│                                           │  ExecutionBackend    │           │
│                                           │  (Celery, local)     │           │
│                                           └──────────────────────┘           │
│                                                                               │
│  The core only forwards identifiers. Resolving a target type to an object   │
│  and calling a method on it happens behind ExecutionBackend.                 │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Any]


@runtime_checkable
class ExecutionBackend(Protocol):
    """At-least-once work queue that eventually invokes the target method.

    Implementations:
        - CeleryExecutionBackend: sends a Celery task
        - LocalExecutionBackend: invokes in-process

    Raises:
        BackendUnavailableError: If the task was not accepted.
    """

    def enqueue(self, target_type: str, method_name: str, target_id: str) -> None:
        ...


@runtime_checkable
class SweepDriver(Protocol):
    """Calls the sweep on a cadence.

    Implementations:
        - ThreadSweepDriver: daemon thread (default)
    """

    name: str

    def start(self, tick_callback: TickCallback, interval_seconds: float = 1.0) -> None:
        """Start calling ``tick_callback`` every ``interval_seconds``."""
        ...

    def stop(self) -> None:
        """Stop calling the callback, waiting for an in-flight tick."""
        ...

    def health(self) -> dict[str, Any]:
        """Return driver health (at least ``healthy`` and ``backend``)."""
        ...


@dataclass
class BackendHealth:
    """Structured driver health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
