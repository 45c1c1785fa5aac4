"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the value store:
- Result/Either monads for zero-exception control flow
- Error hierarchy with stable codes
- Configuration management with validation
"""

from evstore.core.types import (
    Result,
    Ok,
    Err,
    Clock,
    ManualClock,
    format_timestamp,
    parse_duration,
)
from evstore.core.errors import (
    ErrorCode,
    EvStoreError,
    CredentialError,
    RecordError,
    StorageError,
    AdmissionError,
    EntropySourceError,
)
from evstore.core.config import EvStoreConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Clock",
    "ManualClock",
    "format_timestamp",
    "parse_duration",
    "ErrorCode",
    "EvStoreError",
    "CredentialError",
    "RecordError",
    "StorageError",
    "AdmissionError",
    "EntropySourceError",
    "EvStoreConfig",
]
