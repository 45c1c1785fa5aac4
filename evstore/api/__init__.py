"""
API module: HTTP and tool-call interface for the value store.
"""

from evstore.api.router import EvStoreRouter, Request, Response
from evstore.api.handlers import StoreHandlers
from evstore.api.middleware import (
    CorsMiddleware,
    RateLimitMiddleware,
    RequestSizeMiddleware,
)
from evstore.api.tools import ToolAdapter
from evstore.api.asgi import create_asgi_app
from evstore.api.app import Application, build_application

__all__ = [
    "EvStoreRouter",
    "Request",
    "Response",
    "StoreHandlers",
    "CorsMiddleware",
    "RateLimitMiddleware",
    "RequestSizeMiddleware",
    "ToolAdapter",
    "create_asgi_app",
    "Application",
    "build_application",
]
