"""
Shared ordered key-value store abstraction.

The scheduler keeps all coordination state (timer, lock, task set) in a
store shared by every process that calls ``run()``. ``KeyValueStore`` is the
minimal contract the core needs from it; ``RedisStore`` is the production
implementation and ``InMemoryStore`` the single-process one used in tests
and local development.

Architecture:
    ::

        KeyValueStore (Protocol)
        ├── InMemoryStore : single process, thread-safe, injected clock
        └── RedisStore    : redis-py, shared across processes

        Strings:     get / set / set_if_absent(ttl) / delete / delete_if_equals
        Ordered set: zadd / zrange_by_score / zrange / zrem / zcard
        Health:      ping

Guardrails:
    ❌ DON'T: Implement set_if_absent as get-then-set (two callers both win)
    ✅ DO: Use a single atomic primitive (SET NX, a held mutex)

    ❌ DON'T: Let redis exceptions escape the adapter
    ✅ DO: Translate them into StoreUnavailableError

Tags:
    redis, key-value, ordered-set, in-memory, protocol, delay-spine

Doc-Types:
    - API Reference
    - Infrastructure Guide
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

import redis

from delay_spine.core.errors import StoreUnavailableError

# Deletes KEYS[1] only while it still holds ARGV[1].
_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@runtime_checkable
class KeyValueStore(Protocol):
    """Primitives the scheduling core needs from the shared store.

    Implementations:
        - :class:`InMemoryStore`: single-process
        - :class:`RedisStore`: distributed, Redis-backed
    """

    def get(self, key: str) -> str | None:
        """Return the string value of ``key`` or ``None``."""
        ...

    def set(self, key: str, value: str) -> None:
        """Unconditionally write ``key``."""
        ...

    def set_if_absent(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        """Atomically write ``key`` only if it does not exist.

        Returns:
            ``True`` if the write happened.
        """
        ...

    def delete(self, key: str) -> int:
        """Delete ``key``; returns the number of keys removed."""
        ...

    def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically delete ``key`` only while it holds ``value``."""
        ...

    def zadd(self, name: str, member: str, score: float) -> bool:
        """Insert ``member`` with ``score``; ``True`` if it was not present."""
        ...

    def zrange_by_score(self, name: str, max_score: float) -> list[tuple[str, float]]:
        """All members with score ≤ ``max_score``, ascending by score then member."""
        ...

    def zrange(self, name: str, limit: int | None = None) -> list[tuple[str, float]]:
        """The first ``limit`` members (all if ``None``), ascending."""
        ...

    def zrem(self, name: str, member: str) -> bool:
        """Remove ``member``; ``False`` if it was absent."""
        ...

    def zcard(self, name: str) -> int:
        """Number of members in the ordered set."""
        ...

    def ping(self) -> bool:
        """``True`` if the store is reachable."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Store
# ------------------------------------------------------------------ #


class InMemoryStore:
    """Thread-safe in-process implementation of :class:`KeyValueStore`.

    Every operation runs under one mutex, which is what makes
    ``set_if_absent`` atomic across threads. Expiry is checked lazily
    against ``clock`` so tests can move time forward without sleeping.

    Example:
        store = InMemoryStore()
        store.zadd("tasks", "10.User.send_welcome.1", 10)
        store.zrange_by_score("tasks", 15)   # [("10.User.send_welcome.1", 10.0)]
    """

    def __init__(self, *, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._strings: dict[str, tuple[str, float | None]] = {}
        self._sets: dict[str, dict[str, float]] = {}

    def _live_value(self, key: str) -> str | None:
        entry = self._strings.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._strings[key]
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live_value(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._strings[key] = (value, None)

    def set_if_absent(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        with self._lock:
            if self._live_value(key) is not None:
                return False
            expires_at = self._clock() + ttl_seconds if ttl_seconds else None
            self._strings[key] = (value, expires_at)
            return True

    def delete(self, key: str) -> int:
        with self._lock:
            existed = self._live_value(key) is not None
            self._strings.pop(key, None)
            return int(existed)

    def delete_if_equals(self, key: str, value: str) -> bool:
        with self._lock:
            if self._live_value(key) != value:
                return False
            del self._strings[key]
            return True

    def zadd(self, name: str, member: str, score: float) -> bool:
        with self._lock:
            members = self._sets.setdefault(name, {})
            is_new = member not in members
            members[member] = float(score)
            return is_new

    def _sorted(self, name: str) -> list[tuple[str, float]]:
        members = self._sets.get(name, {})
        return sorted(members.items(), key=lambda item: (item[1], item[0]))

    def zrange_by_score(self, name: str, max_score: float) -> list[tuple[str, float]]:
        with self._lock:
            return [(m, s) for m, s in self._sorted(name) if s <= max_score]

    def zrange(self, name: str, limit: int | None = None) -> list[tuple[str, float]]:
        with self._lock:
            items = self._sorted(name)
        return items if limit is None else items[:limit]

    def zrem(self, name: str, member: str) -> bool:
        with self._lock:
            members = self._sets.get(name)
            if not members or member not in members:
                return False
            del members[member]
            return True

    def zcard(self, name: str) -> int:
        with self._lock:
            return len(self._sets.get(name, {}))

    def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove everything (tests only)."""
        with self._lock:
            self._strings.clear()
            self._sets.clear()


# ------------------------------------------------------------------ #
# Redis Store
# ------------------------------------------------------------------ #


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as exc:
        raise StoreUnavailableError(
            f"Redis {operation} failed: {exc}", cause=exc
        ) from exc


class RedisStore:
    """Redis-backed :class:`KeyValueStore`.

    Process-safe via Redis atomic commands: ``SET NX EX`` for the lock and a
    Lua compare-and-delete for fenced release. Responses are decoded to
    ``str``.

    Example:
        store = RedisStore("redis://localhost:6379/0")
        store.set_if_absent("delay_spine:sweep_lock", "worker-1|1700000000", ttl_seconds=60)

    Raises:
        StoreUnavailableError: On connection or timeout errors from redis-py.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        client: Any = None,
        socket_timeout: float | None = 5.0,
    ):
        """Initialize Redis store.

        Args:
            url: Redis connection URL (ignored when ``client`` is given).
            client: Pre-built ``redis.Redis`` client to reuse.
            socket_timeout: Per-command socket timeout in seconds.
        """
        if client is None:
            client = redis.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        self._client = client
        self._compare_and_delete = client.register_script(_COMPARE_AND_DELETE)

    @property
    def client(self) -> Any:
        """The underlying redis-py client."""
        return self._client

    def get(self, key: str) -> str | None:
        with _translate_errors("GET"):
            return self._client.get(key)

    def set(self, key: str, value: str) -> None:
        with _translate_errors("SET"):
            self._client.set(key, value)

    def set_if_absent(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        ex = math.ceil(ttl_seconds) if ttl_seconds else None
        with _translate_errors("SET NX"):
            return bool(self._client.set(key, value, nx=True, ex=ex))

    def delete(self, key: str) -> int:
        with _translate_errors("DEL"):
            return int(self._client.delete(key))

    def delete_if_equals(self, key: str, value: str) -> bool:
        with _translate_errors("compare-and-delete"):
            return int(self._compare_and_delete(keys=[key], args=[value])) == 1

    def zadd(self, name: str, member: str, score: float) -> bool:
        with _translate_errors("ZADD"):
            return int(self._client.zadd(name, {member: score})) == 1

    def zrange_by_score(self, name: str, max_score: float) -> list[tuple[str, float]]:
        with _translate_errors("ZRANGEBYSCORE"):
            rows = self._client.zrangebyscore(name, "-inf", max_score, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def zrange(self, name: str, limit: int | None = None) -> list[tuple[str, float]]:
        end = -1 if limit is None else limit - 1
        if limit is not None and limit <= 0:
            return []
        with _translate_errors("ZRANGE"):
            rows = self._client.zrange(name, 0, end, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def zrem(self, name: str, member: str) -> bool:
        with _translate_errors("ZREM"):
            return int(self._client.zrem(name, member)) == 1

    def zcard(self, name: str) -> int:
        with _translate_errors("ZCARD"):
            return int(self._client.zcard(name))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError:
            return False


__all__ = [
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
]
