"""
Integration Tests: FastAPI Application and Logging

Tests:
    - HTTP round trip through create_asgi_app
    - Client address formatting and request translation
    - Lifespan startup and shutdown
    - Credentials never appear in request logs
    - JSON log lines with request context
"""

import asyncio
import io
import json
import logging

import pytest
from fastapi.testclient import TestClient

from evstore.api.asgi import create_asgi_app, format_client
from evstore.api.router import EvStoreRouter, Response
from evstore.observability.logging import JsonFormatter, LogLevel, current_context, log_context
from evstore.tests.conftest import DOWNLOAD_KEY, UPLOAD_KEY


class TestClientAddress:
    """Tests for format_client."""

    def test_ipv4(self):
        assert format_client(("203.0.113.7", 443)) == "203.0.113.7:443"

    def test_ipv6(self):
        assert format_client(("2001:db8::1", 443)) == "[2001:db8::1]:443"

    def test_missing(self):
        assert format_client(None) == ""


class TestHttp:
    """Tests for requests served by the FastAPI application."""

    def test_key_pair(self, application):
        client = TestClient(create_asgi_app(application.router))
        response = client.get("/kp")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert int(response.headers["content-length"]) == len(response.content)
        assert response.json()["upload-key"].startswith("u_")

    def test_upload_and_download(self, application):
        client = TestClient(create_asgi_app(application.router))
        client.get(f"/u/{UPLOAD_KEY}", params={"temp": "20"})
        response = client.get(f"/d/{DOWNLOAD_KEY}/plain/temp")
        assert response.content == b"20\n"

    def test_oversized_body(self, application):
        client = TestClient(create_asgi_app(application.router))
        response = client.post("/mcp", content=b"x" * 20_000)
        assert response.status_code == 413

    def test_request_translation(self):
        """Blank query values survive and the client address is host:port."""
        seen = {}

        async def capture(request):
            seen["query"] = request.query_params
            seen["remote_addr"] = request.remote_addr
            seen["host"] = request.host
            return Response.text("ok")

        router = EvStoreRouter()
        router.add("/echo", capture)
        client = TestClient(create_asgi_app(router))
        assert client.get("/echo?a=1&b=").status_code == 200
        assert seen["query"] == {"a": ["1"], "b": [""]}
        assert seen["remote_addr"].endswith(":50000")
        assert seen["host"] == "testserver"

    def test_unknown_method(self, application):
        client = TestClient(create_asgi_app(application.router))
        assert client.delete("/kp").status_code == 405


class TestLifespan:
    """Tests for startup and shutdown."""

    def test_startup_and_shutdown(self, application):
        app = create_asgi_app(application.router, lifespan=application.lifespan)
        with TestClient(app) as client:
            assert client.get(f"/u/{UPLOAD_KEY}", params={"v": "1"}).status_code == 200
        result = asyncio.run(application.store.get(DOWNLOAD_KEY))
        assert result.is_err()

    def test_startup_failure(self, application):
        def broken():
            raise RuntimeError("store unavailable")

        app = create_asgi_app(application.router, lifespan=broken)
        with pytest.raises(RuntimeError, match="store unavailable"):
            with TestClient(app):
                pass


class TestLogging:
    """Tests for JSON log formatting."""

    def test_context_fields(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter())
        log = logging.getLogger("evstore.tests.logging")
        log.addHandler(handler)
        log.setLevel(logging.INFO)
        try:
            with log_context(method="GET", path="/kp"):
                log.info("handled", extra={"status": 200})
        finally:
            log.removeHandler(handler)

        line = json.loads(stream.getvalue())
        assert line["message"] == "handled"
        assert line["method"] == "GET"
        assert line["status"] == 200
        assert current_context() == {}

    def test_level_names(self):
        assert LogLevel.from_name("warning") == LogLevel.WARNING
        with pytest.raises(ValueError):
            LogLevel.from_name("chatty")

    def test_request_logs_hide_upload_key(self, application, caplog):
        client = TestClient(create_asgi_app(application.router))
        with caplog.at_level(logging.DEBUG, logger="evstore"):
            response = client.post(f"/u/{UPLOAD_KEY}", content=b"x" * 20_000)
        assert response.status_code == 413
        assert caplog.records
        for record in caplog.records:
            if not record.name.startswith("evstore"):
                continue
            assert UPLOAD_KEY not in record.getMessage()
            assert UPLOAD_KEY not in json.dumps(record.__dict__, default=str)
