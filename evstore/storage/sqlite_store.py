"""
SQLite Record Store: Embedded Persistent Engine with WAL Mode

Default production backend. One table holds every record:

    records(key TEXT PRIMARY KEY, value BLOB, compressed INTEGER, expires_at REAL)

Behaviour:
- put() upserts the row and resets expires_at to now + retention
- reads treat rows with expires_at <= now as absent
- purge_expired() deletes expired rows; the service runs it periodically
- values may be lz4 frame compressed at rest; the per-row flag keeps rows
  readable after the compression setting changes

Thread Safety:
- Single writer, multiple readers (SQLite WAL mode)
- Write operations are serialized by a threading.Lock
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Any, Optional

import lz4.frame

from evstore.core.errors import RecordError, StorageError
from evstore.core.types import Clock, Err, Ok, Result, system_clock
from evstore.storage.backends import BaseRecordStore
from evstore.storage.config import SQLiteConfig
from evstore.storage.protocols import StoreError

logger = logging.getLogger(__name__)

# Values smaller than this are stored raw even when compression is on.
COMPRESSION_THRESHOLD: int = 256

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    key        TEXT PRIMARY KEY,
    value      BLOB NOT NULL,
    compressed INTEGER NOT NULL DEFAULT 0,
    expires_at REAL NOT NULL
)
"""

_EXPIRY_INDEX = "CREATE INDEX IF NOT EXISTS idx_records_expires_at ON records (expires_at)"


class SQLiteRecordStore(BaseRecordStore):
    """
    SQLite storage engine for records.

    Usage:
        store = SQLiteRecordStore(SQLiteConfig(data_dir=Path("./data")), retention_seconds=86400)
        await store.initialize()
        await store.put(key, record)
        await store.close()

    Or as an async context manager, which initializes on entry.
    """

    backend_name = "sqlite"

    __slots__ = ("_config", "_conn", "_write_lock", "_retention", "_clock", "_closed")

    def __init__(
        self,
        config: SQLiteConfig,
        retention_seconds: float,
        clock: Clock = system_clock,
    ) -> None:
        if retention_seconds <= 0:
            raise ValueError(f"retention_seconds must be > 0, got {retention_seconds}")
        self._config = config
        self._conn: Optional[sqlite3.Connection] = None
        self._write_lock = threading.Lock()
        self._retention = retention_seconds
        self._clock = clock
        self._closed = False

    @property
    def retention_seconds(self) -> float:
        return self._retention

    def _pragmas(self) -> list[str]:
        pragmas = [
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            f"PRAGMA cache_size = -{self._config.cache_size_kb}",
            "PRAGMA temp_store = MEMORY",
            f"PRAGMA busy_timeout = {self._config.busy_timeout_ms}",
        ]
        if self._config.mmap_enabled:
            pragmas.append("PRAGMA mmap_size = 268435456")
        return pragmas

    async def initialize(self) -> Result[None, StorageError]:
        """Create the data directory, open the database and apply the schema."""
        if self._conn is not None:
            return Ok(None)
        try:
            self._config.data_dir.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(
                str(self._config.db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            for pragma in self._pragmas():
                self._conn.execute(pragma)
            with self._write_lock:
                self._conn.execute(_SCHEMA)
                self._conn.execute(_EXPIRY_INDEX)

            self._closed = False
            logger.info(
                "SQLite record store initialized",
                extra={"db_path": str(self._config.db_path), "compression": self._config.compression},
            )
            return Ok(None)

        except (sqlite3.Error, OSError) as e:
            logger.error("SQLite record store initialization failed: %s", e)
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            return Err(StorageError.backend_failure(self.backend_name, "initialize", cause=e))

    # -------------------------------------------------------------------------
    # VALUE ENCODING AT REST
    # -------------------------------------------------------------------------
    def _pack(self, data: bytes) -> tuple[bytes, int]:
        if self._config.compressed and len(data) >= COMPRESSION_THRESHOLD:
            return lz4.frame.compress(data), 1
        return data, 0

    @staticmethod
    def _unpack(value: bytes, compressed: int) -> bytes:
        if compressed:
            return lz4.frame.decompress(value)
        return value

    # -------------------------------------------------------------------------
    # RAW OPERATIONS
    # -------------------------------------------------------------------------
    async def _write_raw(self, key: str, data: bytes) -> Result[None, StoreError]:
        if self._conn is None:
            return Err(StorageError.not_connected(self.backend_name))
        value, compressed = self._pack(data)
        try:
            with self._write_lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO records (key, value, compressed, expires_at) "
                    "VALUES (?, ?, ?, ?)",
                    (key, value, compressed, self._clock() + self._retention),
                )
            return Ok(None)
        except sqlite3.Error as e:
            logger.error("SQLite write failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "put", cause=e))

    async def get_raw(self, key: str) -> Result[bytes, StoreError]:
        if self._conn is None:
            return Err(StorageError.not_connected(self.backend_name))
        try:
            row = self._conn.execute(
                "SELECT value, compressed FROM records WHERE key = ? AND expires_at > ?",
                (key, self._clock()),
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("SQLite read failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "get", cause=e))

        if row is None:
            return Err(RecordError.not_found())
        try:
            return Ok(self._unpack(bytes(row[0]), row[1]))
        except RuntimeError as e:
            # lz4.frame raises RuntimeError on a corrupt frame
            logger.error("Stored value failed to decompress: %s", e)
            return Err(RecordError.decode_failed(cause=e))

    async def delete(self, key: str) -> Result[None, StoreError]:
        if self._conn is None:
            return Err(StorageError.not_connected(self.backend_name))
        try:
            with self._write_lock:
                self._conn.execute("DELETE FROM records WHERE key = ?", (key,))
            return Ok(None)
        except sqlite3.Error as e:
            logger.error("SQLite delete failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "delete", cause=e))

    async def purge_expired(self) -> Result[int, StoreError]:
        if self._conn is None:
            return Err(StorageError.not_connected(self.backend_name))
        try:
            with self._write_lock:
                cursor = self._conn.execute(
                    "DELETE FROM records WHERE expires_at <= ?",
                    (self._clock(),),
                )
            if cursor.rowcount:
                logger.info("Purged expired records", extra={"count": cursor.rowcount})
            return Ok(max(cursor.rowcount, 0))
        except sqlite3.Error as e:
            logger.error("SQLite purge failed: %s", e)
            return Err(StorageError.backend_failure(self.backend_name, "purge_expired", cause=e))

    async def close(self) -> None:
        """Checkpoint the WAL and close the connection."""
        if self._closed or self._conn is None:
            self._closed = True
            return
        self._closed = True
        with self._write_lock:
            try:
                self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error as e:
                logger.warning("Final WAL checkpoint failed: %s", e)
            self._conn.close()
            self._conn = None
        logger.info("SQLite record store closed")

    async def __aenter__(self) -> SQLiteRecordStore:
        result = await self.initialize()
        if result.is_err():
            raise result.error
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
