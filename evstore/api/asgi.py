"""
ASGI Application: Serves an EvStoreRouter through FastAPI.

FastAPI owns the protocol side (lifespan events, body streaming, client
addresses); a single catch-all route hands every request to the router so
the middleware chain and route table stay in one place. The lifespan hook
is an async context manager factory; the application uses it to run the
expiry purge task and close the store.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional
from urllib.parse import parse_qs

from fastapi import FastAPI, Request as HttpRequest
from fastapi.responses import Response as HttpResponse
from starlette.requests import ClientDisconnect

from evstore.api.router import EvStoreRouter, Request, redact_path
from evstore.core.constants import MAX_REQUEST_SIZE, SERVER_NAME, SERVER_VERSION
from evstore.observability.logging import log_context

logger = logging.getLogger(__name__)

Lifespan = Callable[[], AbstractAsyncContextManager[Any]]

HTTP_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def format_client(client: Optional[tuple[str, int]]) -> str:
    """Render the ASGI ``client`` pair as ``host:port`` (empty when unknown)."""
    if not client:
        return ""
    host, port = client[0], client[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


async def read_capped_body(request: HttpRequest, limit: int) -> bytes:
    """Drain the request body, keeping at most ``limit + 1`` bytes."""
    kept = bytearray()
    async for chunk in request.stream():
        if len(kept) <= limit:
            kept += chunk[: limit + 1 - len(kept)]
    return bytes(kept)


def build_request(request: HttpRequest, body: bytes) -> Request:
    """Translate a FastAPI request into the router's ``Request``."""
    return Request(
        method=request.method.upper(),
        path=request.scope.get("path") or "/",
        query_params=parse_qs(request.url.query, keep_blank_values=True),
        headers=dict(request.headers.items()),
        body=body,
        remote_addr=format_client(request.client),
    )


def create_asgi_app(
    router: EvStoreRouter,
    lifespan: Optional[Lifespan] = None,
    max_body_size: int = MAX_REQUEST_SIZE,
) -> FastAPI:
    """
    Mount ``router`` on a FastAPI application.

    Example:
        >>> app = create_asgi_app(router, lifespan=application.lifespan)
        >>> uvicorn.run(app, host="127.0.0.1", port=8080)
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        if lifespan is None:
            yield
            return
        async with lifespan():
            yield

    app = FastAPI(
        title=SERVER_NAME,
        version=SERVER_VERSION,
        lifespan=_lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.api_route("/{path:path}", methods=HTTP_METHODS, include_in_schema=False)
    async def dispatch(http_request: HttpRequest) -> HttpResponse:
        try:
            body = await read_capped_body(http_request, max_body_size)
        except ClientDisconnect:
            logger.debug("Client disconnected before the body was read")
            return HttpResponse(status_code=400)

        request = build_request(http_request, body)
        with log_context(method=request.method, path=redact_path(request.path)):
            response = await router.dispatch(request)
            logger.debug("%s %s -> %d", request.method, request.log_path, response.status)
        return HttpResponse(
            content=response.body,
            status_code=response.status,
            headers=response.headers,
        )

    return app
