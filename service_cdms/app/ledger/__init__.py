"""
Ledger store package.

The ledger is the only persistence the case-management core touches:
an ordered key-value store with point reads, point writes, deletes and
prefix range scans, wrapped in per-invocation transactions.

Modules of interest:
- store: the LedgerStore/LedgerTransaction contract and the in-memory store.
- redis_store: Redis-backed store using WATCH/MULTI for atomic commits.
"""

from shared.errors import InvalidInputError
from .store import LedgerStore, LedgerTransaction, MemoryLedgerStore
from .redis_store import RedisLedgerStore


def create_ledger_store(config) -> LedgerStore:
    """Build the ledger store selected by configuration."""
    backend = config.ledger_backend.lower()
    if backend == "memory":
        return MemoryLedgerStore()
    if backend == "redis":
        return RedisLedgerStore(config.redis_url, namespace=config.ledger_namespace)
    raise InvalidInputError(f"unknown ledger backend {config.ledger_backend!r}")


__all__ = [
    "LedgerStore",
    "LedgerTransaction",
    "MemoryLedgerStore",
    "RedisLedgerStore",
    "create_ledger_store",
]
