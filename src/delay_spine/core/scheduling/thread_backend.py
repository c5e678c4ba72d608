"""Threading-based sweep driver.

Calls ``DelayedScheduler.run()`` on a fixed cadence from a daemon thread
inside a long-lived process (web worker, consumer, cron replacement). Any
number of processes may run a driver at once; the trigger gate and sweep
lock keep actual sweeps to one per interval across all of them.

Ticks are scheduled at fixed rate: a slow sweep shortens the following
wait instead of pushing every later tick back. A tick that raises is
counted and logged, and the loop carries on.
"""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime
from typing import Any

from delay_spine.core.logging import get_logger

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)

STOP_TIMEOUT_SECONDS = 5.0


class ThreadSweepDriver:
    """Daemon-thread driver for periodic sweeps.

    Example:
        >>> driver = ThreadSweepDriver()
        >>> driver.start(scheduler.run, interval_seconds=1.0)
        >>> driver.stop()
    """

    name = "thread"

    def __init__(self) -> None:
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._callback: TickCallback | None = None
        self._interval = 1.0
        self._counters = threading.Lock()
        self._ticks = 0
        self._errors = 0
        self._last_tick_at: datetime | None = None
        self._last_error: str | None = None

    # === Lifecycle ===

    def start(self, tick_callback: TickCallback, interval_seconds: float = 1.0) -> None:
        """Begin ticking; a second call while running is ignored."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("sweep_driver_already_started", driver=self.name)
            return

        self._callback = tick_callback
        self._interval = interval_seconds
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="delay-spine-sweep", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop ticking, waiting for an in-flight tick to finish."""
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout=STOP_TIMEOUT_SECONDS)
        if thread.is_alive():
            logger.warning("sweep_driver_stop_timeout", timeout=STOP_TIMEOUT_SECONDS)

    def _run(self) -> None:
        logger.info("sweep_driver_started", driver=self.name, interval=self._interval)
        next_tick = time.monotonic() + self._interval
        while not self._stop.wait(max(0.0, next_tick - time.monotonic())):
            next_tick += self._interval
            self._tick()
        logger.info("sweep_driver_stopped", driver=self.name, ticks=self.tick_count)

    def _tick(self) -> None:
        with self._counters:
            self._ticks += 1
            self._last_tick_at = datetime.now(UTC)
        try:
            self._callback()
        except Exception as exc:
            with self._counters:
                self._last_error = str(exc)
                self._errors += 1
            logger.exception("sweep_tick_failed")

    # === Introspection ===

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        with self._counters:
            return self._ticks

    @property
    def error_count(self) -> int:
        with self._counters:
            return self._errors

    @property
    def last_tick(self) -> datetime | None:
        with self._counters:
            return self._last_tick_at

    def get_health(self) -> BackendHealth:
        with self._counters:
            ticks, errors = self._ticks, self._errors
            last_tick, last_error = self._last_tick_at, self._last_error
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=ticks,
            last_tick=last_tick,
            extra={
                "interval_seconds": self._interval,
                "error_count": errors,
                "last_error": last_error,
            },
        )

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()


__all__ = ["ThreadSweepDriver"]
