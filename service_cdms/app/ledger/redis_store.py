"""
Redis-backed ledger store.

Values live under ``<namespace><key>``. A sorted set whose members all
share score 0 indexes the keys so ``ZRANGEBYLEX`` yields lexicographic
range scans. Each transaction WATCHes every key it reads (and the index
when it scans) and commits through MULTI/EXEC, so a competing write
between read and commit aborts the later transaction instead of letting
both creates succeed.
"""

from typing import Iterator, Optional, Tuple

import redis
from redis.exceptions import RedisError, WatchError

from shared.errors import DependencyFailureError
from shared.logging import get_logger
from .store import LedgerStore, LedgerTransaction, _PendingWrites, _TOMBSTONE


class RedisTransaction(LedgerTransaction):
    """Optimistic transaction over a watched Redis pipeline."""

    def __init__(self, store: "RedisLedgerStore"):
        self._store = store
        self._pipe = store.client.pipeline(transaction=True)
        self._pending = _PendingWrites()
        self._closed = False

    def _storage_key(self, key: str) -> str:
        return self._store.namespace + key

    def get_state(self, key: str) -> Optional[bytes]:
        pending = self._pending.lookup(key)
        if pending is _TOMBSTONE:
            return None
        if pending is not None:
            return pending
        storage_key = self._storage_key(key)
        try:
            self._pipe.watch(storage_key)
            return self._pipe.get(storage_key)
        except RedisError as e:
            raise DependencyFailureError("redis", f"failed to read {key}: {e}")

    def put_state(self, key: str, value: bytes) -> None:
        self._pending.put(key, value)

    def del_state(self, key: str) -> None:
        self._pending.delete(key)

    def get_state_by_range(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        index_key = self._store.index_key
        try:
            self._pipe.watch(index_key)
            members = self._pipe.zrangebylex(index_key, "[" + start_key, "(" + end_key)
            keys = [m.decode("utf-8") if isinstance(m, bytes) else m for m in members]
            values = self._pipe.mget([self._storage_key(k) for k in keys]) if keys else []
        except RedisError as e:
            raise DependencyFailureError("redis", f"failed to scan [{start_key}, {end_key}): {e}")

        committed = [(k, v) for k, v in zip(keys, values) if v is not None]
        return iter(self._pending.merge_range(committed, start_key, end_key))

    def commit(self) -> None:
        if self._closed:
            return
        try:
            if self._pending.writes:
                self._pipe.multi()
                for key, value in self._pending.writes.items():
                    if value is _TOMBSTONE:
                        self._pipe.delete(self._storage_key(key))
                        self._pipe.zrem(self._store.index_key, key)
                    else:
                        self._pipe.set(self._storage_key(key), value)
                        self._pipe.zadd(self._store.index_key, {key: 0})
                self._pipe.execute()
        except WatchError:
            self._store.logger.warning(
                "Ledger transaction lost a concurrent write race",
                keys=sorted(self._pending.writes)
            )
            raise DependencyFailureError("redis", "concurrent modification detected; transaction aborted")
        except RedisError as e:
            self._store.logger.error("Ledger commit failed", error=str(e))
            raise DependencyFailureError("redis", f"failed to commit transaction: {e}")
        finally:
            self._finish()

    def rollback(self) -> None:
        if self._closed:
            return
        self._finish()

    def _finish(self) -> None:
        self._pending.clear()
        self._closed = True
        self._pipe.reset()


class RedisLedgerStore(LedgerStore):
    """Ledger store persisted in Redis."""

    def __init__(self, redis_url: str, namespace: str = "cdms:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.namespace = namespace
        self.index_key = namespace + "__keys__"
        self.logger = get_logger("cdms.ledger.redis")
        self.client = client if client is not None else redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )

    def begin(self) -> RedisTransaction:
        return RedisTransaction(self)

    def health_check(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            self.logger.error("Redis ledger health check failed", error=str(e))
            return False

    def close(self) -> None:
        self.client.close()
        self.logger.info("Redis ledger closed")
