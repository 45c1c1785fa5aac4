"""
Redis Record Store
==================

Shared record store backed by Redis. Each record is one string key:

    SET <key_prefix><download_key> <json> EX <retention_seconds>

Redis enforces expiry itself, so purge_expired() has nothing to do.
Expiry is whole seconds: fractional retentions round up, and anything
below one second is rejected.
Writes replace both value and expiry atomically (single SET).

Thread Safety:
--------------
- Connection pool is thread-safe (redis-py internal locking)
- Instance methods are stateless except for the client reference
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Optional

from evstore.core.errors import RecordError, StorageError
from evstore.core.types import Err, Ok, Result
from evstore.storage.backends import BaseRecordStore
from evstore.storage.config import RedisConfig
from evstore.storage.protocols import StoreError

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RedisRecordStore(BaseRecordStore):
    """
    Redis implementation of the record store.

    Example:
        >>> store = RedisRecordStore(RedisConfig(host="redis.example.com"), 86400)
        >>> await store.connect()
        >>> await store.put(key, record)
        >>> await store.close()

    A pre-built client (anything exposing the redis.asyncio string
    commands used here) may be passed in; the store is then usable
    without connect().
    """

    backend_name = "redis"

    __slots__ = ("_config", "_client", "_retention", "_owns_client")

    def __init__(
        self,
        config: RedisConfig,
        retention_seconds: float,
        client: Optional["aioredis.Redis"] = None,
    ) -> None:
        if retention_seconds < 1:
            raise ValueError(f"retention_seconds must be >= 1, got {retention_seconds}")
        self._config = config
        self._client = client
        self._retention = retention_seconds
        self._owns_client = client is None

    @property
    def retention_seconds(self) -> float:
        return self._retention

    def _key(self, key: str) -> str:
        return f"{self._config.key_prefix}{key}"

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------
    async def connect(self) -> Result[None, StorageError]:
        """
        Create the client and verify the server answers PING.

        Returns:
            Ok(None) on success, Err(StorageError) on failure.
        """
        if self._client is not None:
            return Ok(None)

        import redis.asyncio as aioredis

        try:
            self._client = aioredis.Redis(**self._config.get_connection_kwargs())
            await self._client.ping()
            logger.info(
                "Redis record store connected",
                extra={"host": self._config.host, "port": self._config.port},
            )
            return Ok(None)
        except Exception as e:
            logger.error("Redis connection failed: %s", e)
            self._client = None
            return Err(StorageError.backend_failure(self.backend_name, "connect", cause=e))

    async def close(self) -> None:
        """Close the connection pool. Safe to call multiple times."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    # -------------------------------------------------------------------------
    # RAW OPERATIONS
    # -------------------------------------------------------------------------
    async def _write_raw(self, key: str, data: bytes) -> Result[None, StoreError]:
        if self._client is None:
            return Err(StorageError.not_connected(self.backend_name))
        try:
            await self._client.set(self._key(key), data, ex=math.ceil(self._retention))
            return Ok(None)
        except Exception as e:
            logger.error("Redis write failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "put", cause=e))

    async def get_raw(self, key: str) -> Result[bytes, StoreError]:
        if self._client is None:
            return Err(StorageError.not_connected(self.backend_name))
        try:
            value = await self._client.get(self._key(key))
        except Exception as e:
            logger.error("Redis read failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "get", cause=e))
        if value is None:
            return Err(RecordError.not_found())
        if isinstance(value, str):
            value = value.encode("utf-8")
        return Ok(bytes(value))

    async def delete(self, key: str) -> Result[None, StoreError]:
        if self._client is None:
            return Err(StorageError.not_connected(self.backend_name))
        try:
            await self._client.delete(self._key(key))
            return Ok(None)
        except Exception as e:
            logger.error("Redis delete failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "delete", cause=e))

    async def purge_expired(self) -> Result[int, StoreError]:
        return Ok(0)

    async def __aenter__(self) -> RedisRecordStore:
        result = await self.connect()
        if result.is_err():
            raise result.error
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
