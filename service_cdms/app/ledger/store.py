"""
Ledger store interface and in-memory implementation.

The core never locks or retries on its own. Every invocation runs inside
``LedgerStore.transaction()``, and the store is required to make that
unit serializable: two concurrent transactions that both read a key and
then write it must not both commit. Create-if-absent depends on this.
"""

import bisect
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from shared.logging import get_logger

# Marker for a key deleted inside a pending transaction
_TOMBSTONE = object()


class LedgerTransaction(ABC):
    """One all-or-nothing unit of work against the ledger."""

    @abstractmethod
    def get_state(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for ``key`` or None when absent."""

    @abstractmethod
    def put_state(self, key: str, value: bytes) -> None:
        """Stage a write of ``value`` under ``key``."""

    @abstractmethod
    def del_state(self, key: str) -> None:
        """Stage removal of ``key``."""

    @abstractmethod
    def get_state_by_range(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        """Iterate ``(key, value)`` pairs with ``start_key <= key < end_key`` in key order."""

    @abstractmethod
    def commit(self) -> None:
        """Apply every staged write."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard every staged write."""


class LedgerStore(ABC):
    """Ordered key-value ledger with per-invocation atomicity."""

    @abstractmethod
    def begin(self) -> LedgerTransaction:
        """Open a new transaction."""

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        """Run a block as one transaction; commit on success, roll back on error."""
        txn = self.begin()
        try:
            yield txn
        except BaseException:
            txn.rollback()
            raise
        txn.commit()

    def health_check(self) -> bool:
        """Return True when the store is reachable."""
        return True

    def close(self) -> None:
        """Release store resources."""


class _PendingWrites:
    """Write buffer shared by transaction implementations."""

    def __init__(self):
        self.writes: Dict[str, object] = {}

    def lookup(self, key: str):
        return self.writes.get(key)

    def put(self, key: str, value: bytes) -> None:
        self.writes[key] = bytes(value)

    def delete(self, key: str) -> None:
        self.writes[key] = _TOMBSTONE

    def merge_range(self, committed: List[Tuple[str, bytes]], start_key: str, end_key: str) -> List[Tuple[str, bytes]]:
        """Overlay pending writes onto committed range results."""
        merged = dict(committed)
        for key, value in self.writes.items():
            if not (start_key <= key < end_key):
                continue
            if value is _TOMBSTONE:
                merged.pop(key, None)
            else:
                merged[key] = value
        return sorted(merged.items())

    def clear(self) -> None:
        self.writes.clear()


class MemoryTransaction(LedgerTransaction):
    """Transaction over a ``MemoryLedgerStore``.

    Holds the store lock from creation until commit or rollback.
    """

    def __init__(self, store: "MemoryLedgerStore"):
        self._store = store
        self._pending = _PendingWrites()
        self._closed = False

    def get_state(self, key: str) -> Optional[bytes]:
        pending = self._pending.lookup(key)
        if pending is _TOMBSTONE:
            return None
        if pending is not None:
            return pending
        return self._store._data.get(key)

    def put_state(self, key: str, value: bytes) -> None:
        self._pending.put(key, value)

    def del_state(self, key: str) -> None:
        self._pending.delete(key)

    def get_state_by_range(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        keys = self._store._keys
        lo = bisect.bisect_left(keys, start_key)
        hi = bisect.bisect_left(keys, end_key)
        committed = [(key, self._store._data[key]) for key in keys[lo:hi]]
        # Materialized so callers iterate a stable snapshot
        return iter(self._pending.merge_range(committed, start_key, end_key))

    def commit(self) -> None:
        if self._closed:
            return
        try:
            for key, value in self._pending.writes.items():
                if value is _TOMBSTONE:
                    self._store._remove(key)
                else:
                    self._store._insert(key, value)
        finally:
            self._finish()

    def rollback(self) -> None:
        if self._closed:
            return
        self._finish()

    def _finish(self) -> None:
        self._pending.clear()
        self._closed = True
        self._store._lock.release()


class MemoryLedgerStore(LedgerStore):
    """In-process ordered ledger.

    Transactions are serialized by a single lock, which satisfies the
    check-then-write atomicity the contract relies on.
    """

    def __init__(self):
        self.logger = get_logger("cdms.ledger.memory")
        self._data: Dict[str, bytes] = {}
        self._keys: List[str] = []
        self._lock = threading.RLock()

    def begin(self) -> MemoryTransaction:
        self._lock.acquire()
        return MemoryTransaction(self)

    def _insert(self, key: str, value: bytes) -> None:
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = value

    def _remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._keys.pop(bisect.bisect_left(self._keys, key))

    def __len__(self) -> int:
        return len(self._data)

    def close(self) -> None:
        with self._lock:
            self._data.clear()
            self._keys.clear()
        self.logger.info("Memory ledger closed")
