"""
Core Type Definitions for the Ephemeral Value Store

Implements Result/Either monads for zero-exception control flow,
plus the clock and timestamp primitives shared by every component.

Design Principles:
- Never use null for absence (use Optional or Result)
- Expected failures travel as Err values; exceptions are reserved
  for programming errors and unrecoverable faults
- Time is injected (Clock) so expiry and rolling windows are testable
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries full error context for exhaustive handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# CLOCKS
# =============================================================================
# Wall clock returning seconds since the Unix epoch (float).
Clock = Callable[[], float]

# Monotonic clock for interval arithmetic (token refill).
MonotonicClock = Callable[[], float]


def system_clock() -> float:
    """Default wall clock."""
    return time.time()


def monotonic_clock() -> float:
    """Default monotonic clock."""
    return time.monotonic()


class ManualClock:
    """
    Settable clock for deterministic tests and simulations.

    Usable both as a wall clock and as a monotonic clock.

    Usage:
        clock = ManualClock(start=1_700_000_000.0)
        store = InMemoryRecordStore(retention_seconds=60, clock=clock)
        clock.advance(61)
    """

    __slots__ = ("_now",)

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards by {seconds}s")
        self._now += seconds

    def set(self, now: float) -> None:
        self._now = now


# =============================================================================
# RECORD TIMESTAMPS
# =============================================================================
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(epoch_seconds: float) -> str:
    """
    Render a UTC instant in the reserved `timestamp` field format.

    RFC 3339 with second precision and a literal `Z` suffix,
    e.g. ``2024-05-01T12:30:00Z``.
    """
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse a value produced by format_timestamp (raises ValueError)."""
    return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


# =============================================================================
# DURATIONS
# =============================================================================
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_TOKEN = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> Result[float, str]:
    """
    Parse a duration string such as ``24h``, ``90m`` or ``1h30m45s``.

    Returns the duration in seconds. A bare ``0`` is accepted; any other
    number needs a unit. Negative durations are rejected.
    """
    raw = text.strip()
    if raw == "0":
        return Ok(0.0)
    if not raw:
        return Err("empty duration")
    if raw.startswith("-"):
        return Err(f"negative duration: {text!r}")
    if raw.startswith("+"):
        raw = raw[1:]

    total = 0.0
    pos = 0
    while pos < len(raw):
        match = _DURATION_TOKEN.match(raw, pos)
        if match is None:
            return Err(f"invalid duration: {text!r}")
        number, unit = match.groups()
        total += float(number) * _DURATION_UNITS[unit]
        pos = match.end()
    return Ok(total)
