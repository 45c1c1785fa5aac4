"""
API Handlers: Request Processing Logic

Implements StoreHandlers, the HTTP face of DataService:

    GET /kp                                           key pair
    GET /u/{upload_key}            (legacy /{upload_key})         upload
    GET /patch/{upload_key}[/{path...}]                           patch
    GET /d/{download_key}/json     (legacy /{download_key}/json)  whole record
    GET /d/{download_key}/plain/{field...}                        one field
    GET /d/{download_key}/plain-from-base64url/{field...}         one field, decoded
    GET /delete/{upload_key}                                      delete
    GET /api/stats                                                counters

Query parameters carry the values to store; they are HTML-escaped before
they reach the service. Handlers, not the service, feed the stats.
"""

from __future__ import annotations

import base64
import binascii
import html
import logging
from typing import Optional
from urllib.parse import quote

from evstore.api.router import EvStoreRouter, Request, Response
from evstore.core.errors import ErrorCode, EvStoreError
from evstore.credentials.derivation import add_download_tag, add_upload_tag
from evstore.observability.stats import StatsAggregator
from evstore.records.tree import Leaf, Value, render_value
from evstore.service.data_service import DataService

logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.CREDENTIAL_INVALID_FORMAT: 400,
    ErrorCode.CREDENTIAL_INVALID_LENGTH: 400,
    ErrorCode.RECORD_NOT_FOUND: 404,
    ErrorCode.RECORD_INVALID_PATH: 400,
}


def error_response(error: EvStoreError) -> Response:
    """Map a service error to its HTTP status; internal faults stay opaque."""
    status = _STATUS_BY_CODE.get(error.code, 500)
    if status == 500:
        return Response.error("Internal Server Error", status=500)
    return Response.error(error.message, status=status)


def escape_value(value: str) -> str:
    """Escape &, <, >, ' and " as &amp; &lt; &gt; &#39; &#34;."""
    return html.escape(value, quote=False).replace("'", "&#39;").replace('"', "&#34;")


def sanitized_params(request: Request) -> dict[str, str]:
    """First value of every query parameter, HTML-escaped."""
    return {
        key: escape_value(values[0])
        for key, values in request.query_params.items()
        if values
    }


def decode_base64_lenient(encoded: str) -> Optional[str]:
    """
    Decode standard, URL-safe, or unpadded base64.

    Returns None when no variant accepts the input.
    """
    padded = encoded + "=" * (-len(encoded) % 4)
    for candidate, altchars in ((encoded, None), (encoded, b"-_"), (padded, None), (padded, b"-_")):
        try:
            decoded = base64.b64decode(candidate, altchars=altchars, validate=True)
        except (binascii.Error, ValueError):
            continue
        return decoded.decode("utf-8", errors="replace")
    return None


def download_url(host: str, download_key: str) -> str:
    return f"http://{host}/d/{download_key}/json"


def field_url(host: str, download_key: str, field_path: str) -> str:
    return f"http://{host}/d/{download_key}/plain/{quote(field_path, safe='/')}"


class StoreHandlers:
    """
    Handlers for the value store routes.

    Usage:
        handlers = StoreHandlers(service, stats)
        handlers.register(router)
    """

    __slots__ = ("_service", "_stats")

    def __init__(self, service: DataService, stats: StatsAggregator) -> None:
        self._service = service
        self._stats = stats

    def _fail(self, error: EvStoreError) -> Response:
        self._stats.increment_http_errors()
        return error_response(error)

    def _upload_response(
        self,
        request: Request,
        download_key: str,
        params: dict[str, str],
        path: str = "",
    ) -> Response:
        prefix = f"{path.strip('/')}/" if path.strip("/") else ""
        return Response.json({
            "message": "Data uploaded successfully",
            "download_url": download_url(request.host, download_key),
            "parameter_urls": {
                key: field_url(request.host, download_key, prefix + key)
                for key in params
            },
        })

    # -------------------------------------------------------------------------
    # KEYS
    # -------------------------------------------------------------------------
    async def key_pair(self, request: Request) -> Response:
        """Issue a fresh, tagged credential pair."""
        result = await self._service.generate_key_pair()
        if result.is_err():
            logger.error("Key pair generation failed: %s", result.error)
            return self._fail(result.error)

        upload_key, download_key = result.unwrap()
        return Response.json({
            "upload-key": add_upload_tag(upload_key),
            "download-key": add_download_tag(download_key),
        })

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------
    async def upload(self, request: Request) -> Response:
        """Replace the record with the query parameters."""
        params = sanitized_params(request)
        result = await self._service.upload(request.path_params["upload_key"], params)
        if result.is_err():
            return self._fail(result.error)

        self._stats.increment_uploads()
        download_key, _ = result.unwrap()
        return self._upload_response(request, download_key, params)

    async def patch(self, request: Request) -> Response:
        """Merge the query parameters into the record at the path."""
        params = sanitized_params(request)
        path = request.path_params.get("path", "")
        result = await self._service.patch(request.path_params["upload_key"], path, params)
        if result.is_err():
            return self._fail(result.error)

        self._stats.increment_uploads()
        download_key, _ = result.unwrap()
        return self._upload_response(request, download_key, params, path)

    async def delete(self, request: Request) -> Response:
        result = await self._service.delete(request.path_params["upload_key"])
        if result.is_err():
            return self._fail(result.error)
        return Response.text("OK\n")

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------
    async def download_json(self, request: Request) -> Response:
        """Return the stored record verbatim."""
        result = await self._service.download_json(request.path_params["download_key"])
        if result.is_err():
            return self._fail(result.error)

        self._stats.increment_downloads()
        return Response.raw_json(result.unwrap())

    async def _download_field(self, request: Request) -> Value | Response:
        result = await self._service.download_field(
            request.path_params["download_key"],
            request.path_params["field"],
        )
        if result.is_err():
            return self._fail(result.error)
        return result.unwrap()

    async def download_plain(self, request: Request) -> Response:
        """Return one field as text; nested nodes are rendered as JSON."""
        value = await self._download_field(request)
        if isinstance(value, Response):
            return value

        self._stats.increment_downloads()
        return Response.text(render_value(value) + "\n")

    async def download_base64(self, request: Request) -> Response:
        """Return one base64-encoded field, decoded."""
        value = await self._download_field(request)
        if isinstance(value, Response):
            return value

        decoded = decode_base64_lenient(value.value) if isinstance(value, Leaf) else None
        if decoded is None:
            self._stats.increment_http_errors()
            return Response.error("Error decoding base64url", status=500)

        self._stats.increment_downloads()
        return Response.text(decoded + "\n")

    # -------------------------------------------------------------------------
    # STATS
    # -------------------------------------------------------------------------
    async def stats(self, request: Request) -> Response:
        return Response.json(self._stats.snapshot().to_dict())

    def register(self, router: EvStoreRouter) -> None:
        """Install the routes; literal prefixes before the legacy catch-alls."""
        router.add("/kp", self.key_pair)
        router.add("/api/stats", self.stats)

        router.add("/u/{upload_key}", self.upload)
        router.add("/patch/{upload_key}", self.patch)
        router.add("/patch/{upload_key}/{path...}", self.patch)
        router.add("/delete/{upload_key}", self.delete)
        router.add("/d/{download_key}/json", self.download_json)
        router.add("/d/{download_key}/plain/{field...}", self.download_plain)
        router.add("/d/{download_key}/plain-from-base64url/{field...}", self.download_base64)

        # legacy routes
        router.add("/{upload_key}", self.upload)
        router.add("/{download_key}/json", self.download_json)
        router.add("/{download_key}/plain/{field...}", self.download_plain)


__all__ = [
    "StoreHandlers",
    "decode_base64_lenient",
    "error_response",
    "sanitized_params",
]
