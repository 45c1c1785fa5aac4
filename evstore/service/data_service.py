"""
Data Service: The Five Record Operations

Shared business logic behind both the HTTP routes and the tool-call
adapter:

    generate_key_pair() -> (upload, download)
    upload(upload, params) -> (download, record)          replaces the record
    patch(upload, path, params) -> (download, record)     merges at path
    download_json(download) -> bytes
    download_field(download, field_path) -> Value
    delete(upload) -> download

Keys returned are untagged; adapters add ``u_``/``d_`` for presentation.
Every write sets the root ``timestamp`` leaf and resets the record's
expiry (sliding TTL, enforced by the store).

Concurrency:
    Same-key writes are last-write-wins. Two concurrent patches to one
    credential both read, merge and write; one can overwrite the other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional, Union

from evstore.core.errors import CredentialError, RecordError, StorageError
from evstore.core.types import Clock, Err, Ok, Result, format_timestamp, system_clock
from evstore.credentials.derivation import (
    derive_download_key,
    generate_upload_key,
    normalize_download_key,
    validate_upload_key,
)
from evstore.records.merge import merge_params
from evstore.records.traverse import traverse_field
from evstore.records.tree import Node, Value
from evstore.storage.protocols import RecordStoreProtocol, StoreError

logger = logging.getLogger(__name__)

ServiceError = Union[CredentialError, RecordError, StorageError]


class DataService:
    """
    Orchestrates credential derivation, storage and path merge.

    Usage:
        service = DataService(store)
        upload_key, download_key = (await service.generate_key_pair()).unwrap()
        await service.upload(upload_key, {"temp": "20"})
        raw = (await service.download_json(download_key)).unwrap()
    """

    __slots__ = ("_store", "_clock")

    def __init__(self, store: RecordStoreProtocol, clock: Clock = system_clock) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> RecordStoreProtocol:
        return self._store

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------
    def _resolve_upload_key(self, upload_key: str) -> Result[str, CredentialError]:
        valid = validate_upload_key(upload_key)
        if valid.is_err():
            return valid
        derived = derive_download_key(upload_key)
        if derived.is_err():
            logger.error("Download key derivation failed: %s", derived.error)
        return derived

    def _timestamp(self) -> str:
        return format_timestamp(self._clock())

    @staticmethod
    def _log_store_failure(operation: str, error: StoreError) -> None:
        if isinstance(error, StorageError):
            logger.error("Storage failure during %s: %s", operation, error)

    # -------------------------------------------------------------------------
    # OPERATIONS
    # -------------------------------------------------------------------------
    async def generate_key_pair(self) -> Result[tuple[str, str], CredentialError]:
        """
        Issue a fresh credential pair.

        Raises:
            EntropySourceError: The CSPRNG failed (fatal, not returned).
        """
        upload_key = generate_upload_key()
        return derive_download_key(upload_key).map(lambda download_key: (upload_key, download_key))

    async def upload(
        self,
        upload_key: str,
        params: Mapping[str, str],
    ) -> Result[tuple[str, Node], ServiceError]:
        """Replace the record with ``params`` plus a fresh timestamp."""
        resolved = self._resolve_upload_key(upload_key)
        if resolved.is_err():
            return resolved
        download_key = resolved.unwrap()

        record = Node.from_params(params).with_timestamp(self._timestamp())
        stored = await self._store.put(download_key, record)
        if stored.is_err():
            self._log_store_failure("upload", stored.error)
            return stored
        return Ok((download_key, record))

    async def patch(
        self,
        upload_key: str,
        path: str,
        params: Mapping[str, str],
    ) -> Result[tuple[str, Node], ServiceError]:
        """Merge ``params`` at ``path`` into the existing (or empty) record."""
        resolved = self._resolve_upload_key(upload_key)
        if resolved.is_err():
            return resolved
        download_key = resolved.unwrap()

        existing = await self._store.get_or_empty(download_key)
        if existing.is_err():
            self._log_store_failure("patch", existing.error)
            return existing

        record = merge_params(existing.unwrap(), path, params).with_timestamp(self._timestamp())
        stored = await self._store.put(download_key, record)
        if stored.is_err():
            self._log_store_failure("patch", stored.error)
            return stored
        return Ok((download_key, record))

    async def download_json(self, download_key: str) -> Result[bytes, ServiceError]:
        """Return the stored JSON document for ``download_key``."""
        normalized = normalize_download_key(download_key)
        if normalized.is_err():
            return Err(RecordError.not_found())
        raw = await self._store.get_raw(normalized.unwrap())
        if raw.is_err():
            self._log_store_failure("download", raw.error)
        return raw

    async def download_field(
        self,
        download_key: str,
        field_path: str,
    ) -> Result[Value, ServiceError]:
        """Return the value at ``field_path`` inside the record."""
        normalized = normalize_download_key(download_key)
        if normalized.is_err():
            return Err(RecordError.not_found())
        record = await self._store.get(normalized.unwrap())
        if record.is_err():
            self._log_store_failure("download", record.error)
            return record
        return traverse_field(record.unwrap(), field_path)

    async def delete(self, upload_key: str) -> Result[str, ServiceError]:
        """Remove the record; succeeds when nothing was stored."""
        resolved = self._resolve_upload_key(upload_key)
        if resolved.is_err():
            return resolved
        download_key = resolved.unwrap()

        deleted = await self._store.delete(download_key)
        if deleted.is_err():
            self._log_store_failure("delete", deleted.error)
            return deleted
        return Ok(download_key)

    # -------------------------------------------------------------------------
    # MAINTENANCE
    # -------------------------------------------------------------------------
    async def purge_periodically(
        self,
        interval_seconds: float,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Reclaim expired records every ``interval_seconds`` until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                purged = await self._store.purge_expired()
                if purged.is_err():
                    logger.error("Expired record purge failed: %s", purged.error)
