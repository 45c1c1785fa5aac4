"""
Storage Backend Configuration Module
====================================

Immutable configuration dataclasses for the record store backends.

Design Principles:
------------------
1. **Immutability**: All configs are frozen to prevent runtime mutation
2. **Validation**: Pre-conditions checked at construction time
3. **Defaults**: Sensible defaults for development; explicit for production
4. **Environment**: Supports loading from environment variables

Backend selection mirrors the command line: a ``--store`` value of
``:memory:`` picks the in-memory engine, any other value is a directory
for the embedded SQLite engine. Redis is selected explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, Optional

from evstore.core import constants as C
from evstore.core.types import parse_duration


# =============================================================================
# ENUMERATIONS
# =============================================================================

class BackendType(Enum):
    """
    Storage backend type enumeration.

    Used for factory dispatch and configuration validation.
    """
    IN_MEMORY = auto()  # Development/testing only
    SQLITE = auto()     # Embedded, persistent (default)
    REDIS = auto()      # Shared, expiry enforced server-side

    @classmethod
    def parse(cls, name: str) -> "BackendType":
        aliases = {
            "memory": cls.IN_MEMORY,
            "in_memory": cls.IN_MEMORY,
            "sqlite": cls.SQLITE,
            "redis": cls.REDIS,
        }
        try:
            return aliases[name.strip().lower()]
        except KeyError:
            raise ValueError(f"unknown storage backend: {name!r}") from None


def _env_bool(value: str, default: bool) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    return default


# =============================================================================
# SQLITE CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class SQLiteConfig:
    """
    Embedded SQLite engine configuration.

    Attributes:
        data_dir: Directory holding the database file (created on open).
        compression: ``"lz4"`` to frame-compress values at rest, ``"none"`` to
            store raw JSON.
        cache_size_kb: SQLite page cache size.
        busy_timeout_ms: How long a writer waits on a locked database.
        mmap_enabled: Memory-map the database file for reads.
    """
    data_dir: Path = field(default_factory=lambda: Path(C.DEFAULT_STORE_PATH))
    compression: str = "lz4"
    cache_size_kb: int = C.SQLITE_CACHE_SIZE_KB
    busy_timeout_ms: int = C.SQLITE_BUSY_TIMEOUT_MS
    mmap_enabled: bool = True

    def __post_init__(self) -> None:
        if self.compression not in ("lz4", "none"):
            raise ValueError(f"compression must be 'lz4' or 'none', got {self.compression!r}")
        if self.cache_size_kb <= 0:
            raise ValueError(f"cache_size_kb must be > 0, got {self.cache_size_kb}")
        if self.busy_timeout_ms < 0:
            raise ValueError(f"busy_timeout_ms must be >= 0, got {self.busy_timeout_ms}")

    @property
    def db_path(self) -> Path:
        """Primary database file path."""
        return self.data_dir / C.SQLITE_DB_FILENAME

    @property
    def compressed(self) -> bool:
        return self.compression == "lz4"


# =============================================================================
# REDIS CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class RedisConfig:
    """
    Redis connection configuration.

    Attributes:
        host: Redis server hostname or IP address.
        port: Redis server port (1-65535).
        password: Optional authentication password.
        db: Logical database index (0-15).
        key_prefix: Namespace prepended to every download credential.
        max_connections: Connection pool size. Must be > 0.
        connect_timeout_ms: TCP connection timeout in milliseconds.
        socket_timeout_ms: Socket read/write timeout in milliseconds.
        ssl: Enable TLS encryption for connections.

    Example:
        >>> config = RedisConfig.from_env()
        >>> config = RedisConfig(host="redis.example.com", password="secret")
    """
    password: Optional[str] = None
    host: str = "localhost"
    key_prefix: str = C.REDIS_KEY_PREFIX
    socket_timeout_ms: int = 5000
    connect_timeout_ms: int = 2000
    max_connections: int = 50
    port: int = 6379
    db: int = 0
    ssl: bool = False

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if not (1 <= self.port <= 65535):
            raise ValueError(f"port must be in [1, 65535], got {self.port}")
        if not (0 <= self.db <= 15):
            raise ValueError(f"db must be in [0, 15], got {self.db}")
        if self.max_connections <= 0:
            raise ValueError(f"max_connections must be > 0, got {self.max_connections}")
        if self.connect_timeout_ms <= 0:
            raise ValueError(f"connect_timeout_ms must be > 0, got {self.connect_timeout_ms}")
        if self.socket_timeout_ms <= 0:
            raise ValueError(f"socket_timeout_ms must be > 0, got {self.socket_timeout_ms}")

    @classmethod
    def from_env(cls, prefix: str = "EVSTORE_REDIS") -> "RedisConfig":
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_HOST: Server hostname (default: localhost)
        - {prefix}_PORT: Server port (default: 6379)
        - {prefix}_PASSWORD: Authentication password
        - {prefix}_DB: Database index (default: 0)
        - {prefix}_KEY_PREFIX: Key namespace (default: evstore:)
        - {prefix}_SSL: Enable TLS (default: false)
        - {prefix}_MAX_CONNECTIONS: Pool size (default: 50)
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        return cls(
            host=_get("HOST", "localhost"),
            port=_get_int("PORT", 6379),
            password=_get("PASSWORD") or None,
            db=_get_int("DB", 0),
            key_prefix=_get("KEY_PREFIX", C.REDIS_KEY_PREFIX),
            max_connections=_get_int("MAX_CONNECTIONS", 50),
            connect_timeout_ms=_get_int("CONNECT_TIMEOUT_MS", 2000),
            socket_timeout_ms=_get_int("SOCKET_TIMEOUT_MS", 5000),
            ssl=_env_bool(_get("SSL"), False),
        )

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """
        Generate kwargs for redis-py connection.

        Responses stay as bytes: stored values are raw JSON documents.
        """
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "max_connections": self.max_connections,
            "socket_connect_timeout": self.connect_timeout_ms / 1000.0,
            "socket_timeout": self.socket_timeout_ms / 1000.0,
            "decode_responses": False,
            "ssl": self.ssl,
        }
        if self.password:
            kwargs["password"] = self.password
        return kwargs


# =============================================================================
# UNIFIED STORAGE CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class StorageConfig:
    """
    Unified configuration for the record store.

    Attributes:
        backend: Which engine to construct.
        retention_seconds: Sliding expiry applied on every write.
        sqlite: Embedded engine settings (used when backend == SQLITE).
        redis: Redis settings (required when backend == REDIS).
        purge_interval_seconds: Period of the background expired-row sweep.
    """
    backend: BackendType = BackendType.SQLITE
    retention_seconds: float = float(C.DAY_S)
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    redis: Optional[RedisConfig] = None
    purge_interval_seconds: float = float(C.PURGE_INTERVAL_S)

    def __post_init__(self) -> None:
        if self.retention_seconds <= 0:
            raise ValueError(f"retention_seconds must be > 0, got {self.retention_seconds}")
        if self.purge_interval_seconds <= 0:
            raise ValueError(
                f"purge_interval_seconds must be > 0, got {self.purge_interval_seconds}"
            )
        if self.backend == BackendType.REDIS and self.redis is None:
            raise ValueError("redis config required when backend=REDIS")

    @classmethod
    def for_testing(cls) -> "StorageConfig":
        """In-memory engine with a one minute retention window."""
        return cls(
            backend=BackendType.IN_MEMORY,
            retention_seconds=float(C.MEMORY_RETENTION_S),
        )

    @classmethod
    def from_store_path(
        cls,
        store_path: str,
        retention_seconds: float,
        backend: Optional[BackendType] = None,
        compression: str = "lz4",
    ) -> "StorageConfig":
        """
        Build configuration from the ``--store`` command line value.

        ``:memory:`` selects the in-memory engine unless a backend is given.
        """
        if backend is None:
            backend = (
                BackendType.IN_MEMORY
                if store_path == C.MEMORY_STORE_PATH
                else BackendType.SQLITE
            )
        return cls(
            backend=backend,
            retention_seconds=retention_seconds,
            sqlite=SQLiteConfig(data_dir=Path(store_path), compression=compression),
            redis=RedisConfig.from_env() if backend == BackendType.REDIS else None,
        )

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """
        Construct full configuration from environment.

        Environment Variables:
        - EVSTORE_STORE: directory or ``:memory:`` (default: ./data)
        - EVSTORE_BACKEND: memory|sqlite|redis
        - EVSTORE_PERSIST_VALUES_FOR: retention, e.g. ``24h``
        - EVSTORE_COMPRESSION: lz4|none

        Plus EVSTORE_REDIS_* for the Redis backend.

        Raises:
            ValueError: On an unparseable duration or unknown backend.
        """
        store_path = os.environ.get("EVSTORE_STORE", C.DEFAULT_STORE_PATH)
        backend_name = os.environ.get("EVSTORE_BACKEND", "")
        duration_text = os.environ.get("EVSTORE_PERSIST_VALUES_FOR", C.DEFAULT_PERSIST_DURATION)

        retention = parse_duration(duration_text)
        if retention.is_err():
            raise ValueError(retention.error)

        return cls.from_store_path(
            store_path,
            retention.unwrap(),
            backend=BackendType.parse(backend_name) if backend_name else None,
            compression=os.environ.get("EVSTORE_COMPRESSION", "lz4").lower(),
        )


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "BackendType",
    "SQLiteConfig",
    "RedisConfig",
    "StorageConfig",
]
