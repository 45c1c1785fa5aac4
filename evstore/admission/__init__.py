"""
Admission module: per-client token bucket rate limiting.
"""

from evstore.admission.rate_limiter import (
    Admission,
    RateLimiter,
    TokenBucket,
    is_loopback,
    split_host_port,
)

__all__ = [
    "Admission",
    "RateLimiter",
    "TokenBucket",
    "is_loopback",
    "split_host_port",
]
