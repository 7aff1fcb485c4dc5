"""Tests for draft persistence backends."""

import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from stockcount.core.draft_store import MemoryDraftStore, RedisDraftStore, draft_key


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def test_draft_key_format():
    assert draft_key("alice", 3) == "reconciliation_draft_alice_3"
    assert draft_key("alice", 42, prefix="count") == "count_alice_42"


class TestMemoryDraftStore:
    def test_save_load_clear(self):
        store = MemoryDraftStore(ttl_seconds=60)
        store.save("k", {"observations": [{"productId": 1}]})

        assert store.load("k") == {"observations": [{"productId": 1}]}
        store.clear("k")
        assert store.load("k") is None
        # Clearing an absent key is a no-op
        store.clear("k")

    def test_loaded_value_is_a_copy(self):
        store = MemoryDraftStore(ttl_seconds=60)
        value = {"observations": []}
        store.save("k", value)
        value["observations"].append({"productId": 9})

        assert store.load("k") == {"observations": []}

    def test_entries_expire_after_ttl(self):
        clock = FakeClock(datetime(2026, 1, 1, 12, 0, 0))
        store = MemoryDraftStore(ttl_seconds=3600, clock=clock)
        store.save("k", {"a": 1})

        clock.now += timedelta(minutes=59)
        assert store.load("k") == {"a": 1}
        clock.now += timedelta(minutes=2)
        assert store.load("k") is None
        assert len(store) == 0

    def test_size_limit_evicts_oldest(self):
        clock = FakeClock(datetime(2026, 1, 1))
        store = MemoryDraftStore(ttl_seconds=3600, clock=clock)
        store.MAX_ENTRIES = 5
        for i in range(5):
            clock.now += timedelta(seconds=1)
            store.save(f"k{i}", {"i": i})
        store.save("new", {"i": 99})

        assert store.load("new") == {"i": 99}
        assert len(store) <= 5


class TestRedisDraftStore:
    def test_without_url_uses_memory(self):
        store = RedisDraftStore(ttl_seconds=60)
        assert not store.is_connected
        store.save("k", {"a": 1})
        assert store.load("k") == {"a": 1}

    def test_unreachable_redis_falls_back_to_memory(self):
        client = MagicMock()
        client.ping.side_effect = ConnectionError("refused")
        with patch("redis.from_url", return_value=client):
            store = RedisDraftStore("redis://localhost:6399/0", ttl_seconds=60)

        assert not store.is_connected
        store.save("k", {"a": 1})
        assert store.load("k") == {"a": 1}

    def test_save_uses_setex_with_ttl(self):
        client = MagicMock()
        with patch("redis.from_url", return_value=client):
            store = RedisDraftStore("redis://localhost:6379/0", ttl_seconds=86400)

        assert store.is_connected
        store.save("k", {"a": 1})
        client.setex.assert_called_once_with("k", 86400, json.dumps({"a": 1}))

        client.get.return_value = json.dumps({"a": 1})
        assert store.load("k") == {"a": 1}

        store.clear("k")
        client.delete.assert_called_once_with("k")

    def test_redis_errors_fall_back_to_memory(self):
        client = MagicMock()
        client.setex.side_effect = ConnectionError("lost")
        client.get.side_effect = ConnectionError("lost")
        with patch("redis.from_url", return_value=client):
            store = RedisDraftStore("redis://localhost:6379/0", ttl_seconds=60)

        store.save("k", {"a": 1})
        assert store.load("k") == {"a": 1}
