"""
System-Wide Constants for the Ephemeral Value Store

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

MINUTE_S: Final[int] = 60
HOUR_S: Final[int] = 60 * MINUTE_S
DAY_S: Final[int] = 24 * HOUR_S

# =============================================================================
# CREDENTIALS
# =============================================================================
CREDENTIAL_BYTES: Final[int] = 32
CREDENTIAL_HEX_LENGTH: Final[int] = 2 * CREDENTIAL_BYTES
UPLOAD_TAG: Final[str] = "u_"
DOWNLOAD_TAG: Final[str] = "d_"

# =============================================================================
# RECORDS
# =============================================================================
TIMESTAMP_FIELD: Final[str] = "timestamp"
PATH_SEPARATOR: Final[str] = "/"

# =============================================================================
# ADMISSION
# =============================================================================
MAX_REQUEST_SIZE: Final[int] = 10 * KB
RATE_LIMIT_PER_SECOND: Final[float] = 10.0
RATE_LIMIT_BURST: Final[int] = 5

# =============================================================================
# STATISTICS
# =============================================================================
STATS_WINDOW_S: Final[int] = DAY_S
STATS_BUCKET_S: Final[int] = HOUR_S

# =============================================================================
# STORAGE
# =============================================================================
DEFAULT_STORE_PATH: Final[str] = "./data"
MEMORY_STORE_PATH: Final[str] = ":memory:"
DEFAULT_PERSIST_DURATION: Final[str] = "24h"
MEMORY_RETENTION_S: Final[int] = MINUTE_S
SQLITE_DB_FILENAME: Final[str] = "evstore.db"
SQLITE_CACHE_SIZE_KB: Final[int] = 16 * 1024
SQLITE_BUSY_TIMEOUT_MS: Final[int] = 5000
PURGE_INTERVAL_S: Final[int] = 5 * MINUTE_S
REDIS_KEY_PREFIX: Final[str] = "evstore:"

# =============================================================================
# SERVER
# =============================================================================
DEFAULT_HOST: Final[str] = "127.0.0.1"
DEFAULT_PORT: Final[int] = 8080
SERVER_NAME: Final[str] = "evstore"
SERVER_VERSION: Final[str] = "1.0.0"
MCP_PROTOCOL_VERSION: Final[str] = "2024-11-05"
