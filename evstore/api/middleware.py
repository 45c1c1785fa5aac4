"""
API Middleware: Cross-Cutting Concerns

Provides, in the order they are installed:
- CorsMiddleware: permissive CORS headers and preflight answers
- RequestSizeMiddleware: rejects oversized requests (413)
- RateLimitMiddleware: per-client token bucket admission (429)

Rejections by the last two are counted as HTTP errors in the stats.
"""

from __future__ import annotations

import logging

from evstore.admission.rate_limiter import Admission, RateLimiter, split_host_port
from evstore.api.router import Handler, Request, Response
from evstore.core.constants import MAX_REQUEST_SIZE
from evstore.core.errors import AdmissionError
from evstore.core.types import Err, Ok
from evstore.observability.stats import StatsAggregator

logger = logging.getLogger(__name__)


class CorsMiddleware:
    """
    CORS middleware for cross-origin requests.

    Every response allows any origin; OPTIONS preflights are answered
    directly with 200.
    """

    __slots__ = ("_origins", "_methods", "_headers")

    def __init__(
        self,
        allowed_origins: tuple[str, ...] = ("*",),
        allowed_methods: tuple[str, ...] = ("GET", "POST", "OPTIONS"),
        allowed_headers: tuple[str, ...] = ("Content-Type", "Authorization"),
    ) -> None:
        self._origins = allowed_origins
        self._methods = allowed_methods
        self._headers = allowed_headers

    async def __call__(
        self,
        request: Request,
        handler: Handler,
    ) -> Response:
        """Add CORS headers."""
        origin = request.header("origin", "*")

        if "*" not in self._origins and origin not in self._origins:
            return Response.error("Origin not allowed", status=403)

        # Handle preflight
        if request.method == "OPTIONS":
            return Response(status=200, headers=self._cors_headers(origin))

        response = await handler(request)

        for key, value in self._cors_headers(origin).items():
            response.headers[key] = value

        return response

    def _cors_headers(self, origin: str) -> dict[str, str]:
        """Generate CORS headers."""
        return {
            "Access-Control-Allow-Origin": origin if "*" not in self._origins else "*",
            "Access-Control-Allow-Methods": ", ".join(self._methods),
            "Access-Control-Allow-Headers": ", ".join(self._headers),
        }


class RequestSizeMiddleware:
    """
    Rejects requests whose declared or actual body exceeds ``max_size`` bytes.
    """

    __slots__ = ("_max_size", "_stats")

    def __init__(self, stats: StatsAggregator, max_size: int = MAX_REQUEST_SIZE) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")
        self._max_size = max_size
        self._stats = stats

    def _declared_size(self, request: Request) -> int:
        declared = request.header("content-length")
        if declared is None:
            return 0
        try:
            return int(declared)
        except ValueError:
            return 0

    async def __call__(
        self,
        request: Request,
        handler: Handler,
    ) -> Response:
        size = max(len(request.body), self._declared_size(request))
        if size > self._max_size:
            error = AdmissionError.request_too_large(size, self._max_size)
            logger.error(
                "Request too large",
                extra={
                    "content_length": size,
                    "max": self._max_size,
                    "method": request.method,
                    "path": request.log_path,
                    "remote_addr": request.remote_addr,
                },
            )
            self._stats.increment_http_errors()
            return Response.error(error.message, status=413)

        return await handler(request)


class RateLimitMiddleware:
    """
    Token bucket rate limiter middleware.

    Limits requests per client host. Loopback and transport-less
    (empty address) requests are always admitted.
    """

    __slots__ = ("_limiter", "_stats")

    def __init__(self, limiter: RateLimiter, stats: StatsAggregator) -> None:
        self._limiter = limiter
        self._stats = stats

    async def __call__(
        self,
        request: Request,
        handler: Handler,
    ) -> Response:
        """Apply rate limiting."""
        match self._limiter.admit(request.remote_addr):
            case Ok(Admission.ALLOW):
                return await handler(request)
            case Ok(Admission.DENY):
                host = split_host_port(request.remote_addr).map(lambda hp: hp[0]).unwrap_or(request.remote_addr)
                error = AdmissionError.rate_limited(host)
                logger.error(
                    "Rate limit exceeded",
                    extra={"remote_addr": host, "method": request.method, "path": request.log_path},
                )
                self._stats.increment_http_errors()
                self._stats.record_rate_limit_hit(host)
                return Response.json(
                    {"error": error.message, "retry_after_seconds": 1},
                    status=429,
                    headers={"Retry-After": "1"},
                )
            case Err(error):
                self._stats.increment_http_errors()
                return Response.error(error.message, status=500)
            case _:
                raise RuntimeError("unexpected admission result")
