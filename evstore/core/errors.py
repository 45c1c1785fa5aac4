"""
Error Hierarchy for the Ephemeral Value Store

Design Principles:
- Expected failures travel inside Result values, never as raised exceptions
- Every variant carries a stable ErrorCode for programmatic handling
- Carry enough context to debug, never the credentials themselves

Each error type includes:
- Unique error code (mapped to an HTTP status by the API layer)
- Human-readable message, safe to return to clients
- Optional cause for root cause analysis
- Wall-clock timestamp for log correlation

Usage:
    result = derive_download_key(upload_key)
    match result:
        case Ok(download_key):
            ...
        case Err(CredentialError(code=ErrorCode.CREDENTIAL_INVALID_LENGTH)):
            ...
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Credential errors
    - 2xxx: Record errors
    - 3xxx: Storage errors
    - 4xxx: Admission errors
    - 9xxx: Internal errors
    """

    # Credential errors (1xxx)
    CREDENTIAL_INVALID_FORMAT = 1001
    CREDENTIAL_INVALID_LENGTH = 1002
    CREDENTIAL_DERIVATION_FAILED = 1003

    # Record errors (2xxx)
    RECORD_NOT_FOUND = 2001
    RECORD_INVALID_PATH = 2002
    RECORD_ENCODE_FAILED = 2003
    RECORD_DECODE_FAILED = 2004

    # Storage errors (3xxx)
    STORAGE_BACKEND_FAILURE = 3001
    STORAGE_NOT_CONNECTED = 3002

    # Admission errors (4xxx)
    ADMISSION_RATE_LIMITED = 4001
    ADMISSION_CLIENT_UNPARSEABLE = 4002
    ADMISSION_REQUEST_TOO_LARGE = 4003

    # Internal errors (9xxx)
    INTERNAL_ENTROPY_UNAVAILABLE = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class EvStoreError(Exception):
    """
    Base class for all value store errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: float = field(default_factory=time.time)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for logging/API responses.

        Note: Excludes the cause to avoid leaking implementation details.
        """
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CREDENTIAL ERRORS
# =============================================================================
@dataclass
class CredentialError(EvStoreError):
    """
    Errors validating or deriving upload/download credentials.

    Context never includes the credential text.
    """

    @classmethod
    def invalid_format(cls, reason: str, cause: Optional[Exception] = None) -> CredentialError:
        """Credential is not a 64 character hex string."""
        return cls(
            code=ErrorCode.CREDENTIAL_INVALID_FORMAT,
            message="Invalid upload key format",
            cause=cause,
            context={"reason": reason},
        )

    @classmethod
    def invalid_length(cls, actual_bytes: int, cause: Optional[Exception] = None) -> CredentialError:
        """Credential does not decode to 32 bytes."""
        return cls(
            code=ErrorCode.CREDENTIAL_INVALID_LENGTH,
            message="invalid upload key length",
            cause=cause,
            context={"actual_bytes": actual_bytes},
        )

    @classmethod
    def invalid_download_key(cls, reason: str) -> CredentialError:
        """Download credential is not a 64 character hex string."""
        return cls(
            code=ErrorCode.CREDENTIAL_INVALID_FORMAT,
            message="Invalid download key format",
            context={"reason": reason},
        )

    @classmethod
    def derivation_failed(cls, cause: Optional[Exception] = None) -> CredentialError:
        """Hashing the upload credential failed."""
        return cls(
            code=ErrorCode.CREDENTIAL_DERIVATION_FAILED,
            message="Failed to derive download key",
            cause=cause,
        )


# =============================================================================
# RECORD ERRORS
# =============================================================================
@dataclass
class RecordError(EvStoreError):
    """
    Errors locating, traversing, or (de)serializing records.
    """

    @classmethod
    def not_found(cls, what: str = "Data") -> RecordError:
        """Record (or field) is absent or expired."""
        return cls(
            code=ErrorCode.RECORD_NOT_FOUND,
            message=f"{what} not found",
            context={"what": what},
        )

    @classmethod
    def invalid_path(cls, path: str, segment: str) -> RecordError:
        """Traversal hit a leaf before the path was exhausted."""
        return cls(
            code=ErrorCode.RECORD_INVALID_PATH,
            message="Invalid parameter path",
            context={"path": path, "segment": segment},
        )

    @classmethod
    def encode_failed(cls, cause: Optional[Exception] = None) -> RecordError:
        """Record could not be serialized to JSON."""
        return cls(
            code=ErrorCode.RECORD_ENCODE_FAILED,
            message="Failed to encode record",
            cause=cause,
        )

    @classmethod
    def decode_failed(cls, cause: Optional[Exception] = None) -> RecordError:
        """Stored bytes are not a valid record."""
        return cls(
            code=ErrorCode.RECORD_DECODE_FAILED,
            message="Failed to decode record",
            cause=cause,
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class StorageError(EvStoreError):
    """
    Errors from the storage engine (SQLite, Redis, in-memory).
    """

    @classmethod
    def backend_failure(
        cls,
        backend: str,
        operation: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Underlying engine raised during an operation."""
        return cls(
            code=ErrorCode.STORAGE_BACKEND_FAILURE,
            message=f"Storage operation '{operation}' failed on {backend}",
            cause=cause,
            context={"backend": backend, "operation": operation},
        )

    @classmethod
    def not_connected(cls, backend: str) -> StorageError:
        """Store used before open() or after close()."""
        return cls(
            code=ErrorCode.STORAGE_NOT_CONNECTED,
            message=f"{backend} store is not connected",
            context={"backend": backend},
        )


# =============================================================================
# ADMISSION ERRORS
# =============================================================================
@dataclass
class AdmissionError(EvStoreError):
    """
    Errors raised by request admission (rate limiting, size limits).
    """

    @classmethod
    def rate_limited(cls, client: str) -> AdmissionError:
        """Client exhausted its token bucket."""
        return cls(
            code=ErrorCode.ADMISSION_RATE_LIMITED,
            message="Rate limit exceeded",
            context={"client": client},
        )

    @classmethod
    def client_unparseable(cls, remote_addr: str, cause: Optional[Exception] = None) -> AdmissionError:
        """Remote address could not be split into host and port."""
        return cls(
            code=ErrorCode.ADMISSION_CLIENT_UNPARSEABLE,
            message="Internal Server Error",
            cause=cause,
            context={"remote_addr": remote_addr},
        )

    @classmethod
    def request_too_large(cls, size: int, limit: int) -> AdmissionError:
        """Request body exceeds the configured maximum."""
        return cls(
            code=ErrorCode.ADMISSION_REQUEST_TOO_LARGE,
            message="Request too large",
            context={"size": size, "limit": limit},
        )


# =============================================================================
# FATAL ERRORS
# =============================================================================
@dataclass
class EntropySourceError(EvStoreError):
    """
    The operating system's CSPRNG could not supply random bytes.

    Raised, never returned: there is no safe fallback.
    """

    @classmethod
    def unavailable(cls, cause: Optional[Exception] = None) -> EntropySourceError:
        return cls(
            code=ErrorCode.INTERNAL_ENTROPY_UNAVAILABLE,
            message="Secure random source unavailable",
            cause=cause,
        )
