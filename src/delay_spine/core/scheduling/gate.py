"""Rate limit on how often the due-task scan runs.

``TriggerGate`` keeps a shared "last checked" timestamp so that many callers
of ``run()`` across processes collapse into roughly one scan per interval.

The read and the conditional write are two independent round trips. Two
callers that both see a stale timestamp are both admitted; the gate is a
throttle, and exclusivity is enforced downstream by ``SweepLock``.
"""

from __future__ import annotations

from delay_spine.core.kv import KeyValueStore
from delay_spine.core.logging import get_logger

logger = get_logger(__name__)


class TriggerGate:
    """Shared-timestamp throttle in front of the sweep.

    Example:
        >>> gate = TriggerGate(store, interval_seconds=1.0)
        >>> gate.try_admit(100.0)   # primes the timer
        False
        >>> gate.try_admit(101.5)
        True
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "delay_spine:sweep_timer",
        interval_seconds: float = 1.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.store = store
        self.key = key
        self.interval = interval_seconds

    def last_checked_at(self) -> float | None:
        """Timestamp of the last admitted (or priming) check, if any."""
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    def try_admit(self, now: float) -> bool:
        """Decide whether this caller may attempt a sweep at ``now``.

        - No timestamp yet: record ``now`` and refuse (prime the timer).
        - At least ``interval`` elapsed: record ``now`` and admit.
        - Otherwise refuse.
        """
        raw = self.store.get(self.key)
        if raw is None:
            self.store.set(self.key, repr(float(now)))
            logger.debug("sweep_timer_primed", now=now)
            return False

        try:
            last = float(raw)
        except ValueError:
            logger.warning("sweep_timer_unparsable", value=raw)
            self.store.set(self.key, repr(float(now)))
            return False

        if now - last >= self.interval:
            self.store.set(self.key, repr(float(now)))
            return True
        return False


__all__ = ["TriggerGate"]
