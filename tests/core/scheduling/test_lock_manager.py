"""Tests for delay_spine.core.scheduling.lock_manager: lease-based sweep lock."""

from __future__ import annotations

import threading

import pytest

from delay_spine.core.errors import LockStuckError
from delay_spine.core.kv import InMemoryStore
from delay_spine.core.scheduling.lock_manager import SweepLock

T = 1_700_000_000.0


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture()
def lock(store):
    return SweepLock(store, "lock", ttl_seconds=60, instance_id="inst-1")


@pytest.fixture()
def other(store):
    return SweepLock(store, "lock", ttl_seconds=60, instance_id="inst-2")


# ── Acquire / Release ───────────────────────────────────────────────────


class TestAcquireRelease:
    def test_acquire_returns_token(self, lock):
        token = lock.try_acquire(T)
        assert token is not None
        assert lock.is_held(token) is True

    def test_acquire_blocked_by_other_instance(self, lock, other):
        assert lock.try_acquire(T) is not None
        assert other.try_acquire(T) is None

    def test_release_enables_other_instance(self, lock, other):
        token = lock.try_acquire(T)
        assert lock.release(token) is True
        assert other.try_acquire(T) is not None

    def test_release_without_token(self, lock):
        assert lock.release(None) is False
        assert lock.is_held(None) is False

    def test_release_twice(self, lock):
        token = lock.try_acquire(T)
        lock.release(token)
        assert lock.release(token) is False

    def test_value_format(self, lock, store):
        token = lock.try_acquire(T)
        raw = store.get("lock")
        owner, _, stamp = raw.rpartition("|")
        assert raw == token
        assert owner.startswith("inst-1:")
        assert owner == SweepLock.owner_of(token)
        assert float(stamp) == T

    def test_each_acquisition_gets_fresh_token(self, lock):
        first = lock.try_acquire(T)
        lock.release(first)
        second = lock.try_acquire(T + 1)
        assert SweepLock.owner_of(second) != SweepLock.owner_of(first)

    def test_concurrent_acquire_single_winner(self):
        store = InMemoryStore()
        locks = [SweepLock(store, "lock", instance_id=f"inst-{i}") for i in range(16)]
        barrier = threading.Barrier(len(locks))
        winners: list[tuple[SweepLock, str]] = []

        def contend(lk: SweepLock) -> None:
            barrier.wait()
            token = lk.try_acquire(T)
            if token is not None:
                winners.append((lk, token))

        threads = [threading.Thread(target=contend, args=(lk,)) for lk in locks]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        winner, token = winners[0]
        assert winner.is_held(token)


# ── Lease ────────────────────────────────────────────────────────────────


class TestLease:
    def test_lease_expires(self, lock, other, clock):
        token = lock.try_acquire(T)
        clock.advance(61)
        assert lock.is_held(token) is False
        assert other.try_acquire(T + 61) is not None

    def test_release_after_takeover_leaves_new_holder(self, lock, other, clock, store):
        token = lock.try_acquire(T)
        clock.advance(61)
        successor = other.try_acquire(T + 61)

        assert lock.release(token) is False
        assert other.is_held(successor) is True
        assert store.get("lock") == successor

    def test_same_instance_takeover_keeps_tokens_apart(self, lock, clock, store):
        """Two threads sharing one SweepLock each keep their own lease."""
        first = lock.try_acquire(T)
        clock.advance(61)
        second = lock.try_acquire(T + 61)

        assert lock.is_held(first) is False
        assert lock.release(first) is False
        assert lock.is_held(second) is True
        assert store.get("lock") == second

    def test_no_ttl_never_expires(self, store, clock):
        lk = SweepLock(store, "lock", ttl_seconds=None)
        token = lk.try_acquire(T)
        clock.advance(10**6)
        assert lk.is_held(token) is True


# ── Holder inspection ────────────────────────────────────────────────────


class TestHolder:
    def test_no_holder(self, lock):
        assert lock.holder() is None

    def test_holder_parsed(self, lock):
        token = lock.try_acquire(T)
        info = lock.holder()
        assert info.owner == SweepLock.owner_of(token)
        assert info.acquired_at == T
        assert info.held_for(T + 5) == 5

    def test_bare_timestamp_value(self, lock, store):
        store.set("lock", "1700000000")
        info = lock.holder()
        assert info.owner == "unknown"
        assert info.acquired_at == T

    def test_is_stuck(self, lock, other):
        other.try_acquire(T)
        assert lock.is_stuck(T + 5, threshold_seconds=10) is False
        assert lock.is_stuck(T + 11, threshold_seconds=10) is True

    def test_assert_not_stuck_raises(self, lock, other):
        token = other.try_acquire(T)
        lock.assert_not_stuck(T + 5, 10)
        with pytest.raises(LockStuckError) as info:
            lock.assert_not_stuck(T + 11, 10)
        assert info.value.owner == SweepLock.owner_of(token)
        assert info.value.held_for == 11

    def test_force_release(self, lock, other, store):
        token = other.try_acquire(T)
        assert lock.force_release() is True
        assert store.get("lock") is None
        assert other.is_held(token) is False
        assert lock.force_release() is False
