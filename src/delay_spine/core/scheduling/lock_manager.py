"""Cross-process mutual exclusion for the sweep.

Manifesto:
    At most one process may scan and dispatch the task set at a time,
    otherwise two processes enqueue the same due entry. The lock is a single
    key written with an atomic set-if-absent, so exactly one concurrent
    caller wins. A lease (TTL) lets a crashed holder's lock expire instead of
    stalling the scheduler forever, and an owner token makes release and the
    dispatcher's fencing check refuse to act on someone else's lock.
    Each acquisition returns its own token; callers pass it back to
    ``release()`` and ``is_held()``, so threads sharing one ``SweepLock``
    never act on each other's lease.

Lock value::

    <instance_id>:<token>|<acquired_at>

    e.g. "web-3:9f1c2a7b04de|1700000006.0"

Lease behaviour:
    - ``ttl_seconds=None``: the key lives until released (a crash stalls
      sweeping until ``force_release()``).
    - ``ttl_seconds=N``: the key expires N seconds after acquisition; a
      holder still sweeping after that loses the lease and ``is_held()``
      turns False.

Tags:
    delay-spine, scheduling, distributed-locks, TTL, fencing, concurrency

Doc-Types:
    api-reference
"""

from __future__ import annotations

from uuid import uuid4

from delay_spine.core.errors import LockStuckError
from delay_spine.core.kv import KeyValueStore
from delay_spine.core.logging import get_logger

from .models import LockInfo

logger = get_logger(__name__)


class SweepLock:
    """Lease-based sweep lock over a :class:`KeyValueStore`.

    Example:
        >>> lock = SweepLock(store, instance_id="worker-1", ttl_seconds=60)
        >>> token = lock.try_acquire(now)
        >>> if token:
        ...     try:
        ...         ...  # sweep
        ...     finally:
        ...         lock.release(token)
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "delay_spine:sweep_lock",
        ttl_seconds: int | None = 60,
        instance_id: str | None = None,
    ) -> None:
        """Initialize sweep lock.

        Args:
            store: Shared store
            key: Lock key name
            ttl_seconds: Lease length; ``None`` disables expiry
            instance_id: Identifies this process in the lock value.
                        Auto-generated if not provided.
        """
        self.store = store
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.instance_id = instance_id or str(uuid4())

    @staticmethod
    def owner_of(token: str) -> str:
        """Owner part (``instance_id:nonce``) of an acquisition token."""
        return token.rpartition("|")[0]

    def try_acquire(self, now: float) -> str | None:
        """Take the lock if nobody holds it.

        Returns:
            The acquisition token, or None if another holder exists
        """
        owner = f"{self.instance_id}:{uuid4().hex[:12]}"
        value = f"{owner}|{float(now)!r}"
        if self.store.set_if_absent(self.key, value, ttl_seconds=self.ttl_seconds):
            logger.debug("sweep_lock_acquired", owner=owner)
            return value
        return None

    def release(self, token: str | None) -> bool:
        """Release the lock if ``token`` still holds it.

        A lease that already expired, or was taken over by another process,
        is left alone.

        Returns:
            True if the key was deleted
        """
        if token is None:
            return False
        released = self.store.delete_if_equals(self.key, token)
        if not released:
            logger.warning("sweep_lock_release_skipped", reason="not_held")
        return released

    def is_held(self, token: str | None) -> bool:
        """True while the stored lock value is still ``token``."""
        if token is None:
            return False
        return self.store.get(self.key) == token

    def holder(self) -> LockInfo | None:
        """Parse whoever currently holds the lock.

        Values that do not follow the ``owner|timestamp`` form (for example a
        bare timestamp) are reported with owner ``"unknown"``.
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        owner, sep, stamp = raw.rpartition("|")
        if not sep:
            owner, stamp = "unknown", raw
        try:
            acquired_at = float(stamp)
        except ValueError:
            acquired_at = 0.0
        return LockInfo(owner=owner, acquired_at=acquired_at)

    def is_stuck(self, now: float, threshold_seconds: float) -> bool:
        """True if the current holder has kept the lock longer than the threshold."""
        info = self.holder()
        return info is not None and info.held_for(now) > threshold_seconds

    def assert_not_stuck(self, now: float, threshold_seconds: float) -> None:
        """Raise :class:`LockStuckError` if :meth:`is_stuck` holds."""
        info = self.holder()
        if info is not None and info.held_for(now) > threshold_seconds:
            raise LockStuckError(
                f"Sweep lock held for {info.held_for(now):.1f}s by {info.owner}",
                owner=info.owner,
                held_for=info.held_for(now),
            )

    def force_release(self) -> bool:
        """Delete the lock regardless of holder (operator recovery only)."""
        removed = self.store.delete(self.key) > 0
        if removed:
            logger.warning("sweep_lock_force_released", key=self.key)
        return removed


__all__ = ["SweepLock"]
