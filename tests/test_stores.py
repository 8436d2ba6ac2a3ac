"""
Test suite for shared context stores
"""

import json
from unittest.mock import MagicMock

import pytest
import redis

from throttlekit.config import StoreConfig
from throttlekit.stores import (
    ContextEntry,
    FileStore,
    MemoryStore,
    RedisStore,
    StoreConnectionError,
    StoreSerializationError,
    build_store,
)


class TestContextEntry:
    """Test entry serialization"""

    def test_wire_format(self):
        data = json.loads(ContextEntry(current_count=3, last_action_at=1000).dumps())
        assert data == {"currentCount": 3, "lastActionAt": 1000}

    def test_loads(self):
        entry = ContextEntry.loads('{"currentCount": 2, "lastActionAt": 5.5}')
        assert entry.current_count == 2
        assert entry.last_action_at == 5.5

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            "",
            "not json",
            "[]",
            '{"currentCount": 1}',
            '{"currentCount": "1", "lastActionAt": 0}',
            '{"currentCount": 1, "lastActionAt": null}',
            '{"currentCount": -2, "lastActionAt": 0}',
        ],
    )
    def test_malformed(self, payload):
        with pytest.raises(StoreSerializationError):
            ContextEntry.loads(payload)

    def test_is_stale(self):
        entry = ContextEntry(current_count=1, last_action_at=1000)
        assert entry.is_stale(now=2001, expire=1000)
        assert not entry.is_stale(now=2000, expire=1000)


class TestMemoryStore:
    """Test MemoryStore"""

    def test_crud(self):
        store = MemoryStore()
        assert store.get("k") is None

        store.set("k", "v")
        assert store.get("k") == "v"
        assert list(store.keys()) == ["k"]

        assert store.remove("k") is True
        assert store.remove("k") is False
        assert len(store) == 0


class TestFileStore:
    """Test FileStore"""

    def test_crud(self, tmp_path):
        store = FileStore(str(tmp_path))
        store.set("_ctx.1700000000000", "a")
        store.set("odd/key name", "b")

        assert store.get("_ctx.1700000000000") == "a"
        assert store.get("odd/key name") == "b"
        assert sorted(store.keys()) == ["_ctx.1700000000000", "odd/key name"]

        store.set("_ctx.1700000000000", "c")
        assert store.get("_ctx.1700000000000") == "c"

        assert store.remove("odd/key name") is True
        assert store.remove("odd/key name") is False
        assert store.get("missing") is None

    def test_shared_between_instances(self, tmp_path):
        FileStore(str(tmp_path)).set("k", "v")
        assert FileStore(str(tmp_path)).get("k") == "v"

    def test_ignores_foreign_files(self, tmp_path):
        (tmp_path / "notes.txt").write_text("x")
        assert list(FileStore(str(tmp_path)).keys()) == []


class TestRedisStore:
    """Test RedisStore against a mocked client"""

    def setup_method(self):
        self.client = MagicMock()
        self.store = RedisStore(key_prefix="tk:", client=self.client)

    def test_prefixes_keys(self):
        self.client.get.return_value = b"value"
        assert self.store.get("k") == "value"
        self.client.get.assert_called_once_with("tk:k")

        self.store.set("k", "v")
        self.client.set.assert_called_once_with("tk:k", "v")

    def test_remove(self):
        self.client.delete.return_value = 1
        assert self.store.remove("k") is True
        self.client.delete.return_value = 0
        assert self.store.remove("k") is False

    def test_keys_strip_prefix(self):
        self.client.scan_iter.return_value = iter([b"tk:_ctx.1", "tk:_ctx.2"])
        assert list(self.store.keys()) == ["_ctx.1", "_ctx.2"]
        self.client.scan_iter.assert_called_once_with(match="tk:*", count=100)

    def test_errors_wrapped(self):
        self.client.get.side_effect = redis.ConnectionError("down")
        with pytest.raises(StoreConnectionError):
            self.store.get("k")

        self.client.scan_iter.side_effect = redis.TimeoutError("slow")
        with pytest.raises(StoreConnectionError):
            self.store.keys()

    def test_ping(self):
        self.client.ping.return_value = True
        assert self.store.ping() is True
        self.client.ping.side_effect = redis.ConnectionError("down")
        assert self.store.ping() is False


class TestBuildStore:
    """Test the store factory"""

    def test_memory_default(self):
        assert isinstance(build_store(StoreConfig()), MemoryStore)

    def test_file(self, tmp_path):
        store = build_store(StoreConfig(backend="file", path=str(tmp_path / "ctx")))
        assert isinstance(store, FileStore)
        assert (tmp_path / "ctx").is_dir()

    def test_redis(self):
        store = build_store(StoreConfig(backend="redis", key_prefix="x:"))
        assert isinstance(store, RedisStore)
        assert store.key_prefix == "x:"
