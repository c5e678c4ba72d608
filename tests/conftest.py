"""
Shared pytest fixtures for delay-spine tests.

This module provides:
- A controllable clock driving InMemoryStore expiry
- A recording execution backend that can be told to refuse tasks
- Settings isolated from the environment and any ``.env`` file
- A fully wired scheduler on the in-memory store
"""

from __future__ import annotations

import pytest
import structlog

from delay_spine.core.errors import BackendUnavailableError
from delay_spine.core.kv import InMemoryStore
from delay_spine.core.scheduling import create_scheduler
from delay_spine.core.settings import SchedulerSettings, reset_settings

T0 = 1_700_000_000.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBackend:
    """Execution backend that records every accepted enqueue.

    ``fail_ids`` refuses specific target ids with ``BackendUnavailableError``;
    ``error`` raises the given exception for every call.
    """

    name = "recording"

    def __init__(self):
        self.calls: list[tuple[str, str, str]] = []
        self.attempts = 0
        self.fail_ids: set[str] = set()
        self.error: Exception | None = None

    def enqueue(self, target_type: str, method_name: str, target_id: str) -> None:
        self.attempts += 1
        if self.error is not None:
            raise self.error
        if target_id in self.fail_ids:
            raise BackendUnavailableError(f"refused {target_id}")
        self.calls.append((target_type, method_name, target_id))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_logging_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _isolate_settings_cache():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture()
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture()
def settings() -> SchedulerSettings:
    return SchedulerSettings(_env_file=None)


@pytest.fixture()
def scheduler(store, backend, settings, clock):
    return create_scheduler(store, backend, settings, instance_id="test-1", clock=clock)
