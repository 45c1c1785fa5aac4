"""
Per-Client Admission Control

Token bucket rate limiting keyed by the client's network address.

Behaviour:
- An empty remote address (in-process transports, tests) is admitted.
- An address that cannot be split into host and port is an error, not a
  silent allow or deny.
- Loopback hosts are always admitted and never get a bucket.
- Every other host gets a bucket on first sight: capacity = burst, refilled
  continuously at ``rate`` tokens per second, starting full.

Buckets are never evicted. Under churn of many distinct client addresses
the map grows without bound; ``tracked_clients`` exposes its size so the
growth can be watched.

Thread Safety:
    One threading.Lock guards the bucket map and every bucket update.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
from enum import Enum

from evstore.core.errors import AdmissionError
from evstore.core.types import Err, MonotonicClock, Ok, Result, monotonic_clock

logger = logging.getLogger(__name__)


class Admission(Enum):
    ALLOW = "allow"
    DENY = "deny"


# =============================================================================
# TOKEN BUCKET
# =============================================================================
class TokenBucket:
    """
    Token bucket rate limiter.

    Provides smooth rate limiting with burst support.
    Not synchronized; RateLimiter holds its lock around every call.
    """

    __slots__ = ("_capacity", "_rate", "_tokens", "_last_update", "_clock")

    def __init__(
        self,
        rate: float,
        capacity: float,
        clock: MonotonicClock = monotonic_clock,
    ) -> None:
        """
        Args:
            rate: Tokens per second to add
            capacity: Maximum tokens (burst size)
            clock: Monotonic time source
        """
        self._rate = rate
        self._capacity = capacity
        self._tokens = capacity
        self._clock = clock
        self._last_update = clock()

    def acquire(self, tokens: float = 1.0) -> bool:
        """
        Try to acquire tokens without blocking.

        Returns True if tokens acquired, False otherwise.
        """
        self._refill()

        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    def _refill(self) -> None:
        """Add tokens based on elapsed time."""
        now = self._clock()
        elapsed = max(0.0, now - self._last_update)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_update = now

    @property
    def available(self) -> float:
        """Current available tokens."""
        self._refill()
        return self._tokens


# =============================================================================
# ADDRESS HANDLING
# =============================================================================
def split_host_port(address: str) -> Result[tuple[str, str], AdmissionError]:
    """
    Split ``host:port`` or ``[v6-host]:port``.

    A bare host (no port) and an unbracketed IPv6 literal are rejected.
    """
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or not address[end + 1:].startswith(":"):
            return Err(AdmissionError.client_unparseable(address))
        host, port = address[1:end], address[end + 2:]
    else:
        colon = address.rfind(":")
        if colon < 0:
            return Err(AdmissionError.client_unparseable(address))
        host, port = address[:colon], address[colon + 1:]
        if ":" in host:
            return Err(AdmissionError.client_unparseable(address))
    if "[" in host or "]" in host or "[" in port or "]" in port:
        return Err(AdmissionError.client_unparseable(address))
    return Ok((host, port))


def is_loopback(host: str) -> bool:
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


# =============================================================================
# RATE LIMITER
# =============================================================================
class RateLimiter:
    """
    Per-client token bucket admission gate.

    Usage:
        limiter = RateLimiter(rate=10.0, burst=5)
        match limiter.admit("203.0.113.7:51234"):
            case Ok(Admission.ALLOW):
                ...
            case Ok(Admission.DENY):
                ...
            case Err(error):
                ...
    """

    __slots__ = ("_rate", "_burst", "_buckets", "_lock", "_clock")

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: MonotonicClock = monotonic_clock,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")
        self._rate = rate
        self._burst = burst
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def admit(self, client_address: str) -> Result[Admission, AdmissionError]:
        """Decide whether a request from ``client_address`` may proceed."""
        if client_address == "":
            return Ok(Admission.ALLOW)

        split = split_host_port(client_address)
        if split.is_err():
            logger.error("Unparseable client address: %r", client_address)
            return split

        host, _ = split.unwrap()
        if is_loopback(host):
            return Ok(Admission.ALLOW)

        with self._lock:
            bucket = self._buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(self._rate, float(self._burst), clock=self._clock)
                self._buckets[host] = bucket
            allowed = bucket.acquire()

        if not allowed:
            logger.debug("Rate limit hit for %s", host)
            return Ok(Admission.DENY)
        return Ok(Admission.ALLOW)

    @property
    def tracked_clients(self) -> int:
        """Number of client buckets held (never shrinks)."""
        with self._lock:
            return len(self._buckets)
