"""
Unit tests for the ledger stores.
"""

import threading

import pytest
from unittest.mock import MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError, WatchError

from shared.config import ServiceConfig
from shared.errors import DependencyFailureError, InvalidInputError
from service_cdms.app.ledger import create_ledger_store
from service_cdms.app.ledger.redis_store import RedisLedgerStore
from service_cdms.app.ledger.store import MemoryLedgerStore


class TestMemoryLedgerStore:
    """Test cases for MemoryLedgerStore."""

    @pytest.fixture
    def store(self):
        return MemoryLedgerStore()

    def test_commit_makes_writes_visible(self, store):
        with store.transaction() as txn:
            txn.put_state("case:1", b"one")

        with store.transaction() as txn:
            assert txn.get_state("case:1") == b"one"
        assert len(store) == 1

    def test_missing_key_reads_none(self, store):
        with store.transaction() as txn:
            assert txn.get_state("case:missing") is None

    def test_exception_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.put_state("case:1", b"one")
                txn.put_state("case:2", b"two")
                raise RuntimeError("boom")

        assert len(store) == 0

    def test_reads_own_pending_writes(self, store):
        with store.transaction() as txn:
            txn.put_state("case:1", b"one")
            assert txn.get_state("case:1") == b"one"
            txn.del_state("case:1")
            assert txn.get_state("case:1") is None

    def test_delete_removes_key(self, store):
        with store.transaction() as txn:
            txn.put_state("case:1", b"one")
        with store.transaction() as txn:
            txn.del_state("case:1")

        with store.transaction() as txn:
            assert txn.get_state("case:1") is None
        assert len(store) == 0

    def test_range_scan_is_ordered_and_bounded(self, store):
        with store.transaction() as txn:
            for key in ["case:b", "case:a", "caseX:z", "record:a", "case:c", "cas:a"]:
                txn.put_state(key, key.encode())

        with store.transaction() as txn:
            keys = [k for k, _ in txn.get_state_by_range("case:", "case:\uffff")]

        assert keys == ["case:a", "case:b", "case:c"]

    def test_range_scan_sees_pending_writes_and_deletes(self, store):
        with store.transaction() as txn:
            txn.put_state("case:a", b"a")
            txn.put_state("case:b", b"b")

        with store.transaction() as txn:
            txn.del_state("case:a")
            txn.put_state("case:0", b"0")
            txn.put_state("org:1", b"x")
            result = list(txn.get_state_by_range("case:", "case:\uffff"))

        assert result == [("case:0", b"0"), ("case:b", b"b")]

    def test_transactions_are_serialized(self, store):
        first_entered = threading.Event()
        release_first = threading.Event()
        order = []

        def first():
            with store.transaction() as txn:
                first_entered.set()
                release_first.wait(timeout=5)
                txn.put_state("user:alice", b"first")
                order.append("first")

        def second():
            first_entered.wait(timeout=5)
            with store.transaction() as txn:
                order.append("second")
                assert txn.get_state("user:alice") == b"first"

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        release_first.set()
        t1.join(timeout=5)
        t2.join(timeout=5)

        assert order == ["first", "second"]


class TestRedisLedgerStore:
    """Test cases for RedisLedgerStore against a mocked client."""

    @pytest.fixture
    def pipe(self):
        return MagicMock()

    @pytest.fixture
    def client(self, pipe):
        client = MagicMock()
        client.pipeline.return_value = pipe
        return client

    @pytest.fixture
    def store(self, client):
        return RedisLedgerStore("redis://localhost:6379/0", namespace="cdms:", client=client)

    def test_get_state_watches_namespaced_key(self, store, pipe):
        pipe.get.return_value = b"value"

        with store.transaction() as txn:
            assert txn.get_state("case:1") == b"value"

        pipe.watch.assert_called_with("cdms:case:1")
        pipe.get.assert_called_with("cdms:case:1")
        pipe.multi.assert_not_called()
        pipe.reset.assert_called_once()

    def test_commit_writes_value_and_index(self, store, pipe):
        with store.transaction() as txn:
            txn.put_state("case:1", b"one")
            txn.del_state("case:2")

        pipe.multi.assert_called_once()
        pipe.set.assert_called_once_with("cdms:case:1", b"one")
        pipe.zadd.assert_called_once_with("cdms:__keys__", {"case:1": 0})
        pipe.delete.assert_called_once_with("cdms:case:2")
        pipe.zrem.assert_called_once_with("cdms:__keys__", "case:2")
        pipe.execute.assert_called_once()

    def test_range_scan_uses_lex_bounds(self, store, pipe):
        pipe.zrangebylex.return_value = [b"case:a", b"case:b"]
        pipe.mget.return_value = [b"A", None]

        with store.transaction() as txn:
            result = list(txn.get_state_by_range("case:", "case:\uffff"))

        pipe.watch.assert_called_with("cdms:__keys__")
        pipe.zrangebylex.assert_called_once_with("cdms:__keys__", "[case:", "(case:\uffff")
        pipe.mget.assert_called_once_with(["cdms:case:a", "cdms:case:b"])
        assert result == [("case:a", b"A")]

    def test_lost_race_becomes_dependency_failure(self, store, pipe):
        pipe.execute.side_effect = WatchError("watched key changed")

        with pytest.raises(DependencyFailureError) as exc_info:
            with store.transaction() as txn:
                txn.put_state("case:1", b"one")

        assert "concurrent modification" in exc_info.value.message
        pipe.reset.assert_called_once()

    def test_read_failure_becomes_dependency_failure(self, store, pipe):
        pipe.get.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(DependencyFailureError):
            with store.transaction() as txn:
                txn.get_state("case:1")

        pipe.execute.assert_not_called()

    def test_rollback_discards_writes(self, store, pipe):
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.put_state("case:1", b"one")
                raise RuntimeError("abort")

        pipe.multi.assert_not_called()
        pipe.set.assert_not_called()
        pipe.reset.assert_called_once()

    def test_health_check(self, store, client):
        client.ping.return_value = True
        assert store.health_check() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert store.health_check() is False


class TestCreateLedgerStore:
    """Test cases for backend selection."""

    def test_memory_backend(self):
        config = ServiceConfig(ledger_backend="memory")
        assert isinstance(create_ledger_store(config), MemoryLedgerStore)

    def test_redis_backend(self):
        config = ServiceConfig(ledger_backend="redis", redis_url="redis://localhost:6390/1")
        store = create_ledger_store(config)

        assert isinstance(store, RedisLedgerStore)
        assert store.namespace == "cdms:"

    def test_unknown_backend(self):
        with pytest.raises(InvalidInputError):
            create_ledger_store(ServiceConfig(ledger_backend="leveldb"))
