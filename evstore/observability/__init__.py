"""
Observability module: structured logging and service statistics.
"""

from evstore.observability.logging import (
    JsonFormatter,
    LogLevel,
    log_context,
    setup_logging,
)
from evstore.observability.stats import (
    RateLimitedClient,
    StatsAggregator,
    StatsSnapshot,
)

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "log_context",
    "setup_logging",
    "RateLimitedClient",
    "StatsAggregator",
    "StatsSnapshot",
]
