"""
Integration Tests: HTTP Routes

Drives the full router (middleware included) with in-process requests.

Tests:
    - Legacy and current upload/download/patch/delete routes
    - Trailing slash handling
    - Base64 field decoding
    - CORS, request size and rate limit middleware
    - Stats endpoint and counters
    - Credential masking in request logs
"""

import json

import pytest

from evstore.api.handlers import decode_base64_lenient
from evstore.api.router import EvStoreRouter, Request, redact_path
from evstore.tests.conftest import DOWNLOAD_KEY, UPLOAD_KEY

CLIENT = "203.0.113.7:51234"


def body(response) -> dict:
    return json.loads(response.body)


class TestLegacyRoutes:
    """The untagged short routes."""

    async def test_upload_then_download(self, get):
        response = await get(f"/{UPLOAD_KEY}/?value=8923423")
        assert response.status == 200

        plain = await get(f"/{DOWNLOAD_KEY}/plain/value")
        assert plain.status == 200
        assert plain.body == b"8923423\n"

        whole = await get(f"/{DOWNLOAD_KEY}/json")
        assert whole.status == 200
        assert b'"value":"8923423"' in whole.body
        assert b'""' not in whole.body

    async def test_wrong_upload_key(self, get):
        response = await get("/wrong_upload_key")
        assert response.status == 400
        assert body(response) == {"error": "Invalid upload key format"}

    async def test_without_trailing_slash(self, get):
        assert (await get(f"/{UPLOAD_KEY}?value=1")).status == 200
        assert (await get(f"/{DOWNLOAD_KEY}/json/")).status == 200


class TestUploadAndDelete:
    """Prefixed upload, download and delete routes."""

    async def test_upload_response(self, get):
        response = await get(f"/u/{UPLOAD_KEY}?temp=20&hum=40")
        assert response.status == 200
        data = body(response)
        assert data["message"] == "Data uploaded successfully"
        assert data["download_url"] == f"http://example.test/d/{DOWNLOAD_KEY}/json"
        assert data["parameter_urls"] == {
            "temp": f"http://example.test/d/{DOWNLOAD_KEY}/plain/temp",
            "hum": f"http://example.test/d/{DOWNLOAD_KEY}/plain/hum",
        }

    async def test_tagged_keys(self, get):
        await get(f"/u/u_{UPLOAD_KEY}?value=1")
        response = await get(f"/d/d_{DOWNLOAD_KEY}/plain/value")
        assert response.body == b"1\n"

    async def test_upload_replaces(self, get):
        await get(f"/u/{UPLOAD_KEY}?a=1")
        await get(f"/u/{UPLOAD_KEY}?b=2")
        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/a")).status == 404
        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/b")).body == b"2\n"

    async def test_upload_delete_download(self, get):
        for path in (f"/u/{UPLOAD_KEY}/?value=1", f"/d/{DOWNLOAD_KEY}/json", f"/delete/{UPLOAD_KEY}/"):
            response = await get(path)
            assert response.status == 200
        assert response.body == b"OK\n"

        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/value")).status == 404
        missing = await get(f"/d/{DOWNLOAD_KEY}/json")
        assert missing.status == 404
        assert body(missing) == {"error": "Data not found"}

    async def test_delete_invalid_key(self, get):
        assert (await get("/delete/nothex")).status == 400

    async def test_values_are_html_escaped(self, get):
        await get(f"/u/{UPLOAD_KEY}?value=%3Cb%3Ehi%3C/b%3E")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain/value")
        assert response.body == b"&lt;b&gt;hi&lt;/b&gt;\n"

    async def test_quotes_are_numeric_entities(self, get):
        await get(f"/u/{UPLOAD_KEY}?v=say%20%22hi%22%20it%27s%20%26co")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain/v")
        assert response.body == b"say &#34;hi&#34; it&#39;s &amp;co\n"

    async def test_blank_value_kept(self, get):
        await get(f"/u/{UPLOAD_KEY}?flag=")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain/flag")
        assert response.status == 200
        assert response.body == b"\n"

    async def test_timestamp_stored(self, get):
        await get(f"/u/{UPLOAD_KEY}?value=1")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain/timestamp")
        assert response.body == b"2023-11-14T22:13:20Z\n"

    async def test_nested_plain_is_json(self, get):
        await get(f"/patch/{UPLOAD_KEY}/room?temp=20")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain/room")
        assert response.body == b'{"temp":"20"}\n'

    async def test_plain_through_leaf_is_bad_request(self, get):
        await get(f"/u/{UPLOAD_KEY}?value=1")
        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/value/deeper")).status == 400

    async def test_unknown_download_key(self, get):
        assert (await get("/d/zz/json")).status == 404


class TestPatch:
    """Patch routes at root and nested levels."""

    async def test_patch_levels(self, get):
        assert (await get(f"/patch/{UPLOAD_KEY}/?value=1_4324232")).status == 200
        assert (await get(f"/patch/{UPLOAD_KEY}?value_temp=1_4324232")).status == 200
        response = await get(f"/patch/{UPLOAD_KEY}/1/2?value=2_8923423")
        assert response.status == 200
        assert body(response)["parameter_urls"] == {
            "value": f"http://example.test/d/{DOWNLOAD_KEY}/plain/1/2/value",
        }

        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/1/2/value")).body == b"2_8923423\n"
        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/value")).body == b"1_4324232\n"
        assert (await get(f"/d/{DOWNLOAD_KEY}/plain/value_temp")).body == b"1_4324232\n"

        whole = await get(f"/{DOWNLOAD_KEY}/json")
        assert b'""' not in whole.body
        assert json.loads(whole.body)["1"] == {"2": {"value": "2_8923423"}}

    async def test_patch_keeps_earlier_upload(self, get):
        await get(f"/u/{UPLOAD_KEY}?a=1")
        await get(f"/patch/{UPLOAD_KEY}?b=2")
        data = json.loads((await get(f"/d/{DOWNLOAD_KEY}/json")).body)
        assert data["a"] == "1"
        assert data["b"] == "2"

    async def test_patch_invalid_key(self, get):
        assert (await get("/patch/abc/x?v=1")).status == 400


class TestBase64:
    """Decoding of base64-encoded fields."""

    @pytest.mark.parametrize("encoded", ["aGVsbG8", "aGVsbG8=", "aGVsbG8_", "aGVsbG8/"])
    def test_variants(self, encoded):
        assert decode_base64_lenient(encoded) is not None

    def test_invalid(self):
        assert decode_base64_lenient("!!!") is None

    async def test_route(self, get):
        await get(f"/u/{UPLOAD_KEY}?msg=aGVsbG8")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain-from-base64url/msg")
        assert response.status == 200
        assert response.body == b"hello\n"

    async def test_route_invalid(self, get):
        await get(f"/u/{UPLOAD_KEY}?msg=!!!")
        response = await get(f"/d/{DOWNLOAD_KEY}/plain-from-base64url/msg")
        assert response.status == 500
        assert body(response) == {"error": "Error decoding base64url"}


class TestKeyPairRoute:
    """GET /kp."""

    async def test_tags(self, get):
        response = await get("/kp")
        assert response.status == 200
        data = body(response)
        assert data["upload-key"].startswith("u_")
        assert data["download-key"].startswith("d_")
        assert len(data["upload-key"]) == 66

    async def test_pair_works(self, get):
        data = body(await get("/kp"))
        await get(f"/u/{data['upload-key']}?value=ok")
        response = await get(f"/d/{data['download-key']}/plain/value")
        assert response.body == b"ok\n"


class TestRouting:
    """Fallbacks and method handling."""

    async def test_unknown_path(self, get):
        assert (await get("/a/b/c/d")).status == 404

    async def test_wrong_method(self, application):
        request = Request.from_raw("POST", "/kp")
        response = await application.router.dispatch(request)
        assert response.status == 405


class TestMiddleware:
    """CORS, size and rate limiting."""

    async def test_cors_headers(self, get):
        response = await get("/kp")
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    async def test_preflight(self, application):
        request = Request.from_raw("OPTIONS", f"/u/{UPLOAD_KEY}")
        response = await application.router.dispatch(request)
        assert response.status == 200
        assert "GET" in response.headers["Access-Control-Allow-Methods"]

    async def test_request_too_large(self, application):
        request = Request.from_raw("GET", "/kp", {"Content-Length": "10241"})
        response = await application.router.dispatch(request)
        assert response.status == 413
        assert body(response) == {"error": "Request too large"}
        assert application.stats.snapshot().http_error_count == 1

    async def test_large_body(self, application):
        request = Request.from_raw("POST", "/mcp", body=b"x" * 20_000)
        response = await application.router.dispatch(request)
        assert response.status == 413

    async def test_rate_limited(self, application, get):
        statuses = [(await get("/kp", remote_addr=CLIENT)).status for _ in range(6)]
        assert statuses == [200] * 5 + [429]

        denied = await get("/kp", remote_addr=CLIENT)
        assert denied.headers["Retry-After"] == "1"
        assert body(denied)["error"] == "Rate limit exceeded"

        snap = application.stats.snapshot()
        assert snap.rate_limit_hit_count == 2
        assert snap.rate_limited_clients[0].client == "203.0.113.7"

    async def test_rate_limit_refills(self, application, clock, get):
        for _ in range(5):
            await get("/kp", remote_addr=CLIENT)
        assert (await get("/kp", remote_addr=CLIENT)).status == 429
        clock.advance(1)
        assert (await get("/kp", remote_addr=CLIENT)).status == 200

    async def test_loopback_not_limited(self, get):
        for _ in range(20):
            assert (await get("/kp", remote_addr="127.0.0.1:9000")).status == 200

    async def test_unparseable_client(self, application, get):
        response = await get("/kp", remote_addr="garbage")
        assert response.status == 500
        assert body(response) == {"error": "Internal Server Error"}
        assert application.stats.snapshot().http_error_count == 1


class TestStats:
    """Counters and /api/stats."""

    async def test_counters(self, application, get):
        await get(f"/u/{UPLOAD_KEY}?value=1")
        await get(f"/patch/{UPLOAD_KEY}?other=2")
        await get(f"/d/{DOWNLOAD_KEY}/json")
        await get(f"/d/{DOWNLOAD_KEY}/plain/value")
        await get(f"/d/{DOWNLOAD_KEY}/plain/missing")

        snap = application.stats.snapshot()
        assert snap.upload_count == 2
        assert snap.download_count == 2
        assert snap.http_error_count == 1

    async def test_endpoint(self, get):
        await get(f"/u/{UPLOAD_KEY}?value=1")
        response = await get("/api/stats")
        assert response.status == 200
        data = body(response)
        assert data["upload_count"] == 1
        assert data["last_24h_upload_count"] == 1
        assert data["rate_limited_clients"] == []


class TestLogRedaction:
    """Credentials are masked in logged paths."""

    def test_redact_path(self):
        assert redact_path(f"/u/{UPLOAD_KEY}") == "/u/{key}"
        assert redact_path(f"/d/d_{DOWNLOAD_KEY}/plain/temp") == "/d/d_{key}/plain/temp"
        assert redact_path("/kp") == "/kp"

    async def test_unhandled_error_logs_route_template(self, caplog):
        async def boom(request):
            raise RuntimeError("backend exploded")

        router = EvStoreRouter()
        router.add("/u/{upload_key}", boom)
        response = await router.dispatch(Request.from_raw("GET", f"/u/{UPLOAD_KEY}"))

        assert response.status == 500
        assert "GET /u/{upload_key}" in caplog.text
        assert UPLOAD_KEY not in caplog.text

    async def test_rate_limit_log_masks_key(self, application, get, caplog):
        for _ in range(application.config.limits.burst + 1):
            response = await get(f"/u/{UPLOAD_KEY}?v=1", remote_addr=CLIENT)
        assert response.status == 429
        logged = [r for r in caplog.records if r.getMessage() == "Rate limit exceeded"]
        assert logged
        assert logged[0].path == "/u/{key}"
