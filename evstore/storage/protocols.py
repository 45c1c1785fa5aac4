"""
Record Store Protocol: Storage Abstraction for Expiring Records

Structural subtyping protocol (PEP 544) for pluggable record stores.
Every store is keyed by the download credential and applies a sliding
expiry: each successful put() resets the record's lifetime to the full
retention window.

Design Principles:
    - Zero-exception control flow via Result[T, E] monad
    - Async-first so network-backed engines never block the event loop
    - Backends are chosen at construction, never through global state

Error Contract:
    - get/get_raw on an absent or expired key: Err(RecordError NOT_FOUND)
    - put of a tree that cannot be serialized: Err(RecordError ENCODE_FAILED)
    - engine faults: Err(StorageError)
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, Union, runtime_checkable

from evstore.core.errors import RecordError, StorageError
from evstore.core.types import Result
from evstore.records.tree import Node

StoreError = Union[RecordError, StorageError]


@runtime_checkable
class RecordStoreProtocol(Protocol):
    """
    Async record store with per-write expiry.

    Example:
        async with create_record_store(config) as store:
            await store.put(download_key, record)
            match await store.get(download_key):
                case Ok(record): ...
                case Err(error): ...
    """

    @property
    def backend_name(self) -> str:
        """Short engine name for logs and errors."""
        ...

    @abstractmethod
    async def put(self, key: str, record: Node) -> Result[None, StoreError]:
        """
        Serialize and write ``record``; expiry = now + retention.

        Overwrites any previous value and expiry for ``key``.
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> Result[Node, StoreError]:
        """Return the decoded record or NOT_FOUND."""
        ...

    @abstractmethod
    async def get_raw(self, key: str) -> Result[bytes, StoreError]:
        """Return the stored JSON bytes undecoded, or NOT_FOUND."""
        ...

    @abstractmethod
    async def get_or_empty(self, key: str) -> Result[Node, StoreError]:
        """Like get(), but an absent record yields an empty Node."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> Result[None, StoreError]:
        """Remove ``key``. Succeeds when the key is already gone."""
        ...

    @abstractmethod
    async def purge_expired(self) -> Result[int, StoreError]:
        """Reclaim expired entries; returns how many were removed."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release engine resources. Safe to call more than once."""
        ...

    async def __aenter__(self) -> Any:
        ...

    async def __aexit__(self, *args: Any) -> None:
        ...
