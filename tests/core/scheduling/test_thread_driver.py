"""Tests for delay_spine.core.scheduling.thread_backend: ThreadSweepDriver."""

from __future__ import annotations

import threading
import time

import pytest

from delay_spine.core.kv import InMemoryStore
from delay_spine.core.scheduling import create_scheduler
from delay_spine.core.scheduling.protocol import SweepDriver
from delay_spine.core.scheduling.thread_backend import ThreadSweepDriver
from delay_spine.core.settings import SchedulerSettings


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def driver():
    d = ThreadSweepDriver()
    yield d
    d.stop()


class TestThreadSweepDriver:
    def test_satisfies_protocol(self, driver):
        assert isinstance(driver, SweepDriver)

    def test_initial_state(self, driver):
        assert driver.is_running is False
        assert driver.tick_count == 0
        assert driver.last_tick is None

    def test_ticks_call_callback(self, driver):
        ticked = threading.Event()
        driver.start(ticked.set, interval_seconds=0.01)

        assert ticked.wait(timeout=2.0)
        assert driver.is_running
        assert driver.tick_count >= 1
        assert driver.last_tick is not None

    def test_stop(self, driver):
        driver.start(lambda: None, interval_seconds=0.01)
        driver.stop()
        assert driver.is_running is False
        count = driver.tick_count
        time.sleep(0.05)
        assert driver.tick_count == count

    def test_failing_tick_does_not_kill_thread(self, driver):
        calls = []

        def boom():
            calls.append(1)
            raise RuntimeError("tick failed")

        driver.start(boom, interval_seconds=0.01)

        assert _wait_for(lambda: driver.error_count >= 2)
        assert driver.is_running
        assert len(calls) >= 2

    def test_double_start_ignored(self, driver):
        driver.start(lambda: None, interval_seconds=0.01)
        thread = driver._thread
        driver.start(lambda: None, interval_seconds=0.01)
        assert driver._thread is thread

    def test_restart_after_stop(self, driver):
        driver.start(lambda: None, interval_seconds=0.01)
        driver.stop()
        ticked = threading.Event()
        driver.start(ticked.set, interval_seconds=0.01)
        assert ticked.wait(timeout=2.0)

    def test_health(self, driver):
        driver.start(lambda: None, interval_seconds=0.5)
        health = driver.health()
        assert health["healthy"] is True
        assert health["backend"] == "thread"
        assert health["interval_seconds"] == 0.5
        assert health["error_count"] == 0

    def test_drives_scheduler_run(self, backend):
        settings = SchedulerSettings(_env_file=None, interval_seconds=0.01)
        scheduler = create_scheduler(InMemoryStore(), backend, settings)
        scheduler.schedule_at(0, "User", "m", "1")
        scheduler.start(ThreadSweepDriver(), interval_seconds=0.01)
        try:
            assert _wait_for(lambda: backend.calls == [("User", "m", "1")])
        finally:
            scheduler.stop()


def test_health_reports_last_error():
    driver = ThreadSweepDriver()

    def boom():
        raise RuntimeError("redis down")

    driver.start(boom, interval_seconds=0.01)
    try:
        assert _wait_for(lambda: driver.error_count >= 1)
        assert driver.health()["last_error"] == "redis down"
    finally:
        driver.stop()


def test_health_snapshot_taken_under_counter_lock():
    driver = ThreadSweepDriver()
    snapshots = []

    with driver._counters:
        reader = threading.Thread(target=lambda: snapshots.append(driver.get_health()))
        reader.start()
        reader.join(timeout=0.1)
        assert reader.is_alive()
        assert snapshots == []

    reader.join(timeout=2.0)
    assert snapshots[0].tick_count == 0
