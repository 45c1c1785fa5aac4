"""
HTTP Router: Request Routing and Handler Dispatch

Provides lightweight routing without external dependencies.
Supports:
- Path parameter extraction (``{name}`` for one segment, ``{name...}`` for the rest)
- Optional trailing slash on every route
- Query string parsing (blank values kept)
- Method-based dispatch
- A middleware chain wrapped around the whole dispatch, so middleware also
  sees preflight, 404 and 405 requests
- Credential masking for paths that reach the logs
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Awaitable, Optional, Sequence
from urllib.parse import parse_qs, unquote, urlparse

logger = logging.getLogger(__name__)

# Credentials are 64 hex digits; any long hex run is masked.
_CREDENTIAL_LIKE = re.compile(r"[0-9A-Fa-f]{16,}")


def redact_path(path: str) -> str:
    """Mask credential-shaped path segments before logging."""
    return _CREDENTIAL_LIKE.sub("{key}", path)


@dataclass
class Request:
    """HTTP request representation."""
    method: str
    path: str
    query_params: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    path_params: dict[str, str] = field(default_factory=dict)
    remote_addr: str = ""
    route_template: str = ""

    @classmethod
    def from_raw(
        cls,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: bytes = b"",
        remote_addr: str = "",
    ) -> Request:
        """Parse request from raw HTTP data."""
        parsed = urlparse(url)
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return cls(
            method=method.upper(),
            path=unquote(parsed.path) or "/",
            query_params=query_params,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            body=body,
            remote_addr=remote_addr,
        )

    @property
    def host(self) -> str:
        """Host the client addressed, used to build absolute URLs."""
        return self.headers.get("host", "localhost")

    def json(self) -> Any:
        """Parse body as JSON."""
        if not self.body:
            return None
        return json.loads(self.body)

    @property
    def log_path(self) -> str:
        """Path safe to log: the matched route template, or the path with credentials masked."""
        return self.route_template or redact_path(self.path)

    def header(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get header value (case-insensitive)."""
        return self.headers.get(key.lower(), default)


@dataclass
class Response:
    """HTTP response representation."""
    status: int = 200
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def json(
        cls,
        data: Any,
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> Response:
        """Create JSON response."""
        body = json.dumps(data, default=str).encode()
        h = headers or {}
        h["content-type"] = "application/json"
        return cls(status=status, body=body, headers=h)

    @classmethod
    def raw_json(cls, body: bytes, status: int = 200) -> Response:
        """Wrap an already-encoded JSON document."""
        return cls(status=status, body=body, headers={"content-type": "application/json"})

    @classmethod
    def text(cls, text: str, status: int = 200) -> Response:
        """Create plain text response."""
        return cls(
            status=status,
            body=text.encode("utf-8"),
            headers={"content-type": "text/plain; charset=utf-8"},
        )

    @classmethod
    def error(cls, message: str, status: int = 400) -> Response:
        """Create error response."""
        return cls.json({"error": message}, status=status)

    @classmethod
    def not_found(cls) -> Response:
        """Create 404 response."""
        return cls.error("Not found", status=404)

    @classmethod
    def method_not_allowed(cls) -> Response:
        """Create 405 response."""
        return cls.error("Method not allowed", status=405)


# Handler function signature
Handler = Callable[[Request], Awaitable[Response]]

# Middleware function signature
Middleware = Callable[[Request, Handler], Awaitable[Response]]

_PARAM = re.compile(r"\{(\w+)(\.\.\.)?\}")


@dataclass
class Route:
    """Route definition."""
    method: str
    template: str
    pattern: re.Pattern
    handler: Handler

    @classmethod
    def create(cls, method: str, path: str, handler: Handler) -> Route:
        """Create route from path pattern."""

        def replace_param(match: re.Match) -> str:
            if match.group(2):
                return r"(?P<" + match.group(1) + r">.+?)"
            return r"(?P<" + match.group(1) + r">[^/]+)"

        pattern_str = ""
        last = 0
        for match in _PARAM.finditer(path):
            pattern_str += re.escape(path[last:match.start()]) + replace_param(match)
            last = match.end()
        pattern_str += re.escape(path[last:])

        # trailing slash is optional
        pattern_str = f"^{pattern_str.rstrip('/')}/?$"

        return cls(
            method=method.upper(),
            template=path,
            pattern=re.compile(pattern_str),
            handler=handler,
        )

    def match(self, method: str, path: str) -> Optional[dict[str, str]]:
        """Match request against route."""
        if method.upper() != self.method:
            return None

        match = self.pattern.match(path)
        if not match:
            return None

        return match.groupdict()


class EvStoreRouter:
    """
    HTTP request router.

    Usage:
        router = EvStoreRouter()

        @router.route("/d/{download_key}/json")
        async def download(request: Request) -> Response:
            key = request.path_params["download_key"]
            ...

        response = await router.dispatch(request)

    Routes are tried in registration order; register literal paths before
    catch-all ones.
    """

    __slots__ = ("_routes", "_middleware")

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._middleware: list[Middleware] = []

    def route(
        self,
        path: str,
        methods: Sequence[str] = ("GET",),
    ) -> Callable[[Handler], Handler]:
        """Register route decorator."""
        def decorator(handler: Handler) -> Handler:
            for method in methods:
                self._routes.append(Route.create(method, path, handler))
            return handler
        return decorator

    def add(self, path: str, handler: Handler, methods: Sequence[str] = ("GET",)) -> None:
        """Register ``handler`` without the decorator form."""
        self.route(path, methods)(handler)

    def use(self, middleware: Middleware) -> None:
        """Add middleware. The first one added runs outermost."""
        self._middleware.append(middleware)

    async def _route(self, request: Request) -> Response:
        for route in self._routes:
            params = route.match(request.method, request.path)
            if params is not None:
                request.path_params = params
                request.route_template = route.template
                return await route.handler(request)

        # Check if path exists but wrong method
        for route in self._routes:
            if route.pattern.match(request.path):
                return Response.method_not_allowed()
        return Response.not_found()

    async def dispatch(self, request: Request) -> Response:
        """Run the middleware chain, then route request to handler."""
        final_handler: Handler = self._route
        for mw in reversed(self._middleware):
            final_handler = self._wrap_middleware(mw, final_handler)

        try:
            return await final_handler(request)
        except Exception:
            logger.exception("Unhandled error for %s %s", request.method, request.log_path)
            return Response.error("Internal Server Error", status=500)

    def _wrap_middleware(
        self,
        middleware: Middleware,
        handler: Handler,
    ) -> Handler:
        """Wrap handler with middleware."""
        async def wrapped(request: Request) -> Response:
            return await middleware(request, handler)
        return wrapped
