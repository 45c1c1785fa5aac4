"""
Record Store Backends: Shared Base and In-Memory Implementation

Provides:
- BaseRecordStore: encode/decode plumbing shared by every engine
- InMemoryRecordStore: dict-backed store for tests and ``--store :memory:``

Design Principles:
    - Engines implement only raw byte I/O (_write_raw, get_raw, delete,
      purge_expired, close); record (de)serialization lives here once
    - Injectable clock so TTL boundaries are testable without sleeping
    - Expired entries are invisible immediately and reclaimed lazily

Performance Characteristics:
    - Get/Put/Delete: O(1) average case (plus O(n) JSON for record size n)
    - purge_expired: O(total keys)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict

from evstore.core.errors import ErrorCode, RecordError, StorageError
from evstore.core.types import Clock, Err, Ok, Result, system_clock
from evstore.records.tree import Node, decode_record, encode_record
from evstore.storage.protocols import StoreError

logger = logging.getLogger(__name__)


# =============================================================================
# SHARED BASE
# =============================================================================
class BaseRecordStore(ABC):
    """
    Record (de)serialization on top of a raw byte store.

    Subclasses set ``_retention`` (seconds) and implement the raw hooks.
    """

    backend_name: str = "base"

    __slots__ = ()

    @property
    @abstractmethod
    def retention_seconds(self) -> float:
        ...

    @abstractmethod
    async def _write_raw(self, key: str, data: bytes) -> Result[None, StoreError]:
        """Store ``data`` with expiry now + retention."""
        ...

    @abstractmethod
    async def get_raw(self, key: str) -> Result[bytes, StoreError]:
        ...

    @abstractmethod
    async def delete(self, key: str) -> Result[None, StoreError]:
        ...

    @abstractmethod
    async def purge_expired(self) -> Result[int, StoreError]:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    async def put(self, key: str, record: Node) -> Result[None, StoreError]:
        encoded = encode_record(record)
        if encoded.is_err():
            logger.error("Record encoding failed: %s", encoded.error)
            return encoded
        return await self._write_raw(key, encoded.unwrap())

    async def get(self, key: str) -> Result[Node, StoreError]:
        raw = await self.get_raw(key)
        if raw.is_err():
            return raw
        decoded = decode_record(raw.unwrap())
        if decoded.is_err():
            logger.error("Stored record is corrupt (%s): %s", self.backend_name, decoded.error)
        return decoded

    async def get_or_empty(self, key: str) -> Result[Node, StoreError]:
        result = await self.get(key)
        match result:
            case Err(RecordError(code=ErrorCode.RECORD_NOT_FOUND)):
                return Ok(Node.empty())
            case _:
                return result

    async def __aenter__(self) -> BaseRecordStore:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# =============================================================================
# IN-MEMORY STORE
# =============================================================================
@dataclass(slots=True)
class _Entry:
    data: bytes
    expires_at: float


class InMemoryRecordStore(BaseRecordStore):
    """
    In-memory record store.

    Thread Safety:
        All operations are protected by asyncio.Lock for concurrent
        access safety within one event loop.

    Example:
        store = InMemoryRecordStore(retention_seconds=60)
        await store.put(key, Node.from_params({"temp": "20"}))
        result = await store.get(key)
    """

    backend_name = "memory"

    __slots__ = ("_data", "_lock", "_retention", "_clock", "_closed")

    def __init__(self, retention_seconds: float, clock: Clock = system_clock) -> None:
        if retention_seconds <= 0:
            raise ValueError(f"retention_seconds must be > 0, got {retention_seconds}")
        self._data: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._retention = retention_seconds
        self._clock = clock
        self._closed = False

    @property
    def retention_seconds(self) -> float:
        return self._retention

    async def _write_raw(self, key: str, data: bytes) -> Result[None, StoreError]:
        if self._closed:
            return Err(StorageError.not_connected(self.backend_name))
        async with self._lock:
            self._data[key] = _Entry(data=data, expires_at=self._clock() + self._retention)
        return Ok(None)

    async def get_raw(self, key: str) -> Result[bytes, StoreError]:
        if self._closed:
            return Err(StorageError.not_connected(self.backend_name))
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return Err(RecordError.not_found())
            if self._clock() >= entry.expires_at:
                del self._data[key]
                return Err(RecordError.not_found())
            return Ok(entry.data)

    async def delete(self, key: str) -> Result[None, StoreError]:
        if self._closed:
            return Err(StorageError.not_connected(self.backend_name))
        async with self._lock:
            self._data.pop(key, None)
        return Ok(None)

    async def purge_expired(self) -> Result[int, StoreError]:
        """Remove all expired records. Returns count removed."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._data.items() if now >= entry.expires_at]
            for key in expired:
                del self._data[key]
        if expired:
            logger.debug("Purged %d expired records", len(expired))
        return Ok(len(expired))

    async def close(self) -> None:
        async with self._lock:
            self._data.clear()
        self._closed = True
