"""Tests for ``delay_spine.core.kv.RedisStore``: Redis-backed KeyValueStore.

The redis client is a MagicMock; no server is needed.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from delay_spine.core.errors import StoreUnavailableError
from delay_spine.core.kv import _COMPARE_AND_DELETE, KeyValueStore, RedisStore


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def redis_store(client):
    return RedisStore(client=client)


class TestRedisStoreInit:
    def test_init_from_url(self, monkeypatch):
        mock_from_url = MagicMock(return_value=MagicMock())
        monkeypatch.setattr(redis, "from_url", mock_from_url)

        RedisStore("redis://custom:6380/1")
        mock_from_url.assert_called_once_with(
            "redis://custom:6380/1", decode_responses=True, socket_timeout=5.0
        )

    def test_registers_compare_and_delete(self, client):
        RedisStore(client=client)
        client.register_script.assert_called_once_with(_COMPARE_AND_DELETE)

    def test_satisfies_protocol(self, redis_store):
        assert isinstance(redis_store, KeyValueStore)


class TestStrings:
    def test_get(self, redis_store, client):
        client.get.return_value = "1700000000.0"
        assert redis_store.get("timer") == "1700000000.0"
        client.get.assert_called_once_with("timer")

    def test_set(self, redis_store, client):
        redis_store.set("timer", "1.0")
        client.set.assert_called_once_with("timer", "1.0")

    def test_set_if_absent_with_ttl(self, redis_store, client):
        client.set.return_value = True
        assert redis_store.set_if_absent("lock", "v", ttl_seconds=60) is True
        client.set.assert_called_once_with("lock", "v", nx=True, ex=60)

    def test_set_if_absent_without_ttl(self, redis_store, client):
        client.set.return_value = None
        assert redis_store.set_if_absent("lock", "v") is False
        client.set.assert_called_once_with("lock", "v", nx=True, ex=None)

    def test_delete(self, redis_store, client):
        client.delete.return_value = 1
        assert redis_store.delete("lock") == 1

    def test_delete_if_equals_uses_script(self, redis_store, client):
        script = client.register_script.return_value
        script.return_value = 1
        assert redis_store.delete_if_equals("lock", "mine") is True
        script.assert_called_once_with(keys=["lock"], args=["mine"])

    def test_delete_if_equals_mismatch(self, redis_store, client):
        client.register_script.return_value.return_value = 0
        assert redis_store.delete_if_equals("lock", "mine") is False


class TestOrderedSet:
    def test_zadd(self, redis_store, client):
        client.zadd.return_value = 1
        assert redis_store.zadd("tasks", "10.User.m.1", 10) is True
        client.zadd.assert_called_once_with("tasks", {"10.User.m.1": 10})

    def test_zadd_existing(self, redis_store, client):
        client.zadd.return_value = 0
        assert redis_store.zadd("tasks", "10.User.m.1", 10) is False

    def test_zrange_by_score(self, redis_store, client):
        client.zrangebyscore.return_value = [("5.User.m.1", 5), ("10.User.m.1", 10)]
        rows = redis_store.zrange_by_score("tasks", 15)
        assert rows == [("5.User.m.1", 5.0), ("10.User.m.1", 10.0)]
        client.zrangebyscore.assert_called_once_with("tasks", "-inf", 15, withscores=True)

    def test_zrange_with_limit(self, redis_store, client):
        client.zrange.return_value = []
        redis_store.zrange("tasks", 2)
        client.zrange.assert_called_once_with("tasks", 0, 1, withscores=True)

    def test_zrange_all(self, redis_store, client):
        client.zrange.return_value = []
        redis_store.zrange("tasks")
        client.zrange.assert_called_once_with("tasks", 0, -1, withscores=True)

    def test_zrange_zero_limit_skips_round_trip(self, redis_store, client):
        assert redis_store.zrange("tasks", 0) == []
        client.zrange.assert_not_called()

    def test_zrem(self, redis_store, client):
        client.zrem.return_value = 0
        assert redis_store.zrem("tasks", "gone") is False

    def test_zcard(self, redis_store, client):
        client.zcard.return_value = 3
        assert redis_store.zcard("tasks") == 3


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "exc", [redis.exceptions.ConnectionError("down"), redis.exceptions.TimeoutError("slow")]
    )
    def test_connection_errors_become_store_unavailable(self, redis_store, client, exc):
        client.zrangebyscore.side_effect = exc
        with pytest.raises(StoreUnavailableError) as info:
            redis_store.zrange_by_score("tasks", 10)
        assert info.value.retryable is True
        assert info.value.__cause__ is exc

    def test_ping_ok(self, redis_store, client):
        client.ping.return_value = True
        assert redis_store.ping() is True

    def test_ping_failure_returns_false(self, redis_store, client):
        client.ping.side_effect = redis.exceptions.ConnectionError("down")
        assert redis_store.ping() is False
