"""
Ephemeral Value Store

A capability-based key-value store for small devices and scripts:
- An upload key (256-bit secret) writes a record
- A download key, SHA-256 of the upload key, reads it and nothing more
- Records expire after a sliding retention window
- Patches merge values into nested paths of the record

Storage engines: in-memory, SQLite (WAL, optional lz4) and Redis.
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from evstore.core.types import (
    Result,
    Ok,
    Err,
    ManualClock,
)
from evstore.core.errors import (
    EvStoreError,
    CredentialError,
    RecordError,
    StorageError,
    AdmissionError,
    EntropySourceError,
)
from evstore.core.config import EvStoreConfig
from evstore.credentials import (
    derive_download_key,
    generate_upload_key,
    validate_upload_key,
)
from evstore.records import Leaf, Node, merge_at_path
from evstore.service import DataService
from evstore.storage import (
    InMemoryRecordStore,
    SQLiteRecordStore,
    RedisRecordStore,
    StorageConfig,
    create_record_store,
    open_record_store,
)

__all__ = [
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    "ManualClock",
    # Errors
    "EvStoreError",
    "CredentialError",
    "RecordError",
    "StorageError",
    "AdmissionError",
    "EntropySourceError",
    # Config
    "EvStoreConfig",
    "StorageConfig",
    # Credentials
    "derive_download_key",
    "generate_upload_key",
    "validate_upload_key",
    # Records
    "Leaf",
    "Node",
    "merge_at_path",
    # Service and storage
    "DataService",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "RedisRecordStore",
    "create_record_store",
    "open_record_store",
]
