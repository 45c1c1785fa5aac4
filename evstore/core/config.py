"""
Configuration Management for the Ephemeral Value Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides (EVSTORE_*); command line flags
override both.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from evstore.core import constants as C
from evstore.core.types import Err, Ok, Result
from evstore.storage.config import StorageConfig


@dataclass(frozen=True)
class ServiceConfig:
    """HTTP listener configuration."""

    host: str = C.DEFAULT_HOST
    port: int = C.DEFAULT_PORT

    def __post_init__(self) -> None:
        if not (0 <= self.port <= 65535):
            raise ValueError(f"port must be in [0, 65535], got {self.port}")


@dataclass(frozen=True)
class LimitsConfig:
    """Admission control configuration."""

    max_request_size: int = C.MAX_REQUEST_SIZE
    rate_per_second: float = C.RATE_LIMIT_PER_SECOND
    burst: int = C.RATE_LIMIT_BURST

    def __post_init__(self) -> None:
        if self.max_request_size <= 0:
            raise ValueError(f"max_request_size must be > 0, got {self.max_request_size}")
        if self.rate_per_second <= 0:
            raise ValueError(f"rate_per_second must be > 0, got {self.rate_per_second}")
        if self.burst < 1:
            raise ValueError(f"burst must be >= 1, got {self.burst}")


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = False


@dataclass(frozen=True)
class EvStoreConfig:
    """Root configuration for the value store."""

    service: ServiceConfig = field(default_factory=ServiceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[EvStoreConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with EVSTORE_.
        Example: EVSTORE_PORT, EVSTORE_PERSIST_VALUES_FOR, EVSTORE_RATE_LIMIT_BURST
        """
        try:
            service = ServiceConfig(
                host=os.getenv("EVSTORE_HOST", C.DEFAULT_HOST),
                port=int(os.getenv("EVSTORE_PORT", str(C.DEFAULT_PORT))),
            )

            limits = LimitsConfig(
                max_request_size=int(
                    os.getenv("EVSTORE_MAX_REQUEST_SIZE", str(C.MAX_REQUEST_SIZE))
                ),
                rate_per_second=float(
                    os.getenv("EVSTORE_RATE_LIMIT_PER_SECOND", str(C.RATE_LIMIT_PER_SECOND))
                ),
                burst=int(os.getenv("EVSTORE_RATE_LIMIT_BURST", str(C.RATE_LIMIT_BURST))),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("EVSTORE_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("EVSTORE_LOG_JSON", "").lower() in ("true", "1", "yes"),
            )

            return Ok(cls(
                service=service,
                limits=limits,
                storage=StorageConfig.from_env(),
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate cross-field configuration invariants."""
        if self.observability.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return Err(f"Unknown log level: {self.observability.log_level}")
        if self.storage.retention_seconds < 1:
            return Err("Retention must be at least one second")
        return Ok(None)
