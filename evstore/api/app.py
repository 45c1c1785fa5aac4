"""
Application assembly: wires service, stats, rate limiter, middleware and
routes into one router, plus the lifespan that runs background purging.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from evstore.admission.rate_limiter import RateLimiter
from evstore.api.handlers import StoreHandlers
from evstore.api.middleware import CorsMiddleware, RateLimitMiddleware, RequestSizeMiddleware
from evstore.api.router import EvStoreRouter
from evstore.api.tools import ToolAdapter
from evstore.core.config import EvStoreConfig
from evstore.core.types import Clock, MonotonicClock, monotonic_clock, system_clock
from evstore.observability.stats import StatsAggregator
from evstore.service.data_service import DataService
from evstore.storage.protocols import RecordStoreProtocol

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Everything one running server owns."""

    config: EvStoreConfig
    store: RecordStoreProtocol
    service: DataService
    stats: StatsAggregator
    limiter: RateLimiter
    router: EvStoreRouter

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator[None]:
        """Purge expired records in the background; close the store on exit."""
        stop = asyncio.Event()
        purger = asyncio.create_task(
            self.service.purge_periodically(self.config.storage.purge_interval_seconds, stop)
        )
        logger.info(
            "Value store started",
            extra={
                "backend": self.store.backend_name,
                "retention_seconds": self.config.storage.retention_seconds,
            },
        )
        try:
            yield
        finally:
            stop.set()
            await purger
            await self.store.close()
            logger.info("Value store stopped")


def build_application(
    config: EvStoreConfig,
    store: RecordStoreProtocol,
    clock: Clock = system_clock,
    monotonic: MonotonicClock = monotonic_clock,
) -> Application:
    """
    Assemble the router over an opened store.

    Middleware order is CORS, then request size, then rate limit.
    """
    stats = StatsAggregator(clock=clock)
    limiter = RateLimiter(config.limits.rate_per_second, config.limits.burst, clock=monotonic)
    service = DataService(store, clock=clock)

    router = EvStoreRouter()
    router.use(CorsMiddleware())
    router.use(RequestSizeMiddleware(stats, max_size=config.limits.max_request_size))
    router.use(RateLimitMiddleware(limiter, stats))

    ToolAdapter(service, stats).register(router)
    StoreHandlers(service, stats).register(router)

    return Application(
        config=config,
        store=store,
        service=service,
        stats=stats,
        limiter=limiter,
        router=router,
    )
