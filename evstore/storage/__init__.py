"""
Storage Module: Expiring Record Stores
======================================

Provides:
- RecordStoreProtocol, the contract every engine satisfies
- InMemoryRecordStore for development/testing
- SQLiteRecordStore (default, persistent) and RedisRecordStore (shared)
- Factory functions for backend selection from StorageConfig

Design Principles:
-----------------
1. **Backend Agnostic**: Same interface for in-memory and production
2. **Factory Pattern**: Backend chosen from configuration at construction
3. **Sliding Expiry**: Every write resets the record's lifetime
4. **Result Monad**: No exceptions for control flow

Example:
    >>> store = create_record_store(StorageConfig.for_testing())
    >>> opened = await open_record_store(StorageConfig.from_store_path("./data", 86400))
"""

from __future__ import annotations

from typing import Optional

from evstore.core.errors import StorageError
from evstore.core.types import Clock, Err, Ok, Result, system_clock
from evstore.storage.protocols import RecordStoreProtocol, StoreError
from evstore.storage.backends import BaseRecordStore, InMemoryRecordStore
from evstore.storage.config import (
    BackendType,
    RedisConfig,
    SQLiteConfig,
    StorageConfig,
)
from evstore.storage.sqlite_store import SQLiteRecordStore
from evstore.storage.redis_store import RedisRecordStore


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_record_store(
    config: StorageConfig,
    clock: Clock = system_clock,
) -> BaseRecordStore:
    """
    Construct (but do not open) the store selected by ``config.backend``.

    The clock applies to the in-memory and SQLite engines; Redis keeps
    time on the server.
    """
    if config.backend == BackendType.IN_MEMORY:
        return InMemoryRecordStore(config.retention_seconds, clock=clock)
    if config.backend == BackendType.SQLITE:
        return SQLiteRecordStore(config.sqlite, config.retention_seconds, clock=clock)
    if config.backend == BackendType.REDIS:
        assert config.redis is not None
        return RedisRecordStore(config.redis, config.retention_seconds)
    raise ValueError(f"unsupported backend: {config.backend}")


async def open_record_store(
    config: StorageConfig,
    clock: Clock = system_clock,
) -> Result[BaseRecordStore, StorageError]:
    """Construct the configured store and open its connection."""
    store = create_record_store(config, clock=clock)
    opened: Optional[Result[None, StorageError]] = None
    if isinstance(store, SQLiteRecordStore):
        opened = await store.initialize()
    elif isinstance(store, RedisRecordStore):
        opened = await store.connect()
    if opened is not None and opened.is_err():
        return Err(opened.error)
    return Ok(store)


__all__ = [
    # Protocol
    "RecordStoreProtocol",
    "StoreError",
    # Backends
    "BaseRecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "RedisRecordStore",
    # Configuration
    "BackendType",
    "RedisConfig",
    "SQLiteConfig",
    "StorageConfig",
    # Factories
    "create_record_store",
    "open_record_store",
]
