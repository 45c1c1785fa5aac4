"""
Unit Tests: Tool-Call Adapter

Tests:
    - Tool listing and input validation
    - The five tools against an in-memory store
    - JSON-RPC framing (initialize, tools/list, tools/call, errors)
    - The /mcp HTTP routes
"""

import json

import pytest

from evstore.api.router import Request
from evstore.api.tools import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PatchDataInput,
    ToolAdapter,
    ToolInputError,
    UploadDataInput,
)
from evstore.tests.conftest import DOWNLOAD_KEY, UPLOAD_KEY

BASE = "http://example.test"


@pytest.fixture
def tools(service, stats) -> ToolAdapter:
    return ToolAdapter(service, stats)


def rpc(method: str, params=None, request_id=1) -> dict:
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def payload(result) -> dict:
    return json.loads(result.to_dict()["content"][0]["text"])


class TestInputs:
    """Tests for argument parsing."""

    def test_upload_requires_key(self):
        with pytest.raises(ToolInputError):
            UploadDataInput.parse({"parameters": {"a": "1"}})

    def test_scalars_are_stringified(self):
        parsed = UploadDataInput.parse({"upload_key": "k", "parameters": {"n": 3, "ok": True, "s": "x"}})
        assert parsed.parameters == {"n": "3", "ok": "true", "s": "x"}

    def test_nested_values_rejected(self):
        with pytest.raises(ToolInputError):
            UploadDataInput.parse({"upload_key": "k", "parameters": {"n": {"deep": "1"}}})

    def test_patch_path_defaults_to_root(self):
        assert PatchDataInput.parse({"upload_key": "k", "parameters": {}}).path == ""


class TestTools:
    """Tests for the five tools."""

    def test_list(self, tools):
        names = [tool["name"] for tool in tools.list_tools()]
        assert names == ["generate_key_pair", "upload_data", "patch_data", "download_data", "delete_data"]
        assert all("inputSchema" in tool for tool in tools.list_tools())

    async def test_generate_key_pair(self, tools):
        data = payload(await tools.call_tool("generate_key_pair", base_url=BASE))
        assert len(data["upload_key"]) == 64
        assert data["upload_url"] == f"{BASE}/u/{data['upload_key']}?param=value"
        assert data["download_url"] == f"{BASE}/d/{data['download_key']}/json"

    async def test_upload_and_download(self, tools, stats):
        uploaded = await tools.call_tool(
            "upload_data",
            {"upload_key": UPLOAD_KEY, "parameters": {"temp": "20"}},
            base_url=BASE,
        )
        assert not uploaded.is_error
        data = payload(uploaded)
        assert data["parameter_count"] == 1
        assert data["parameter_urls"] == {"temp": f"{BASE}/d/{DOWNLOAD_KEY}/plain/temp"}

        whole = payload(await tools.call_tool("download_data", {"download_key": DOWNLOAD_KEY}))
        assert whole["data"]["temp"] == "20"
        assert whole["message"] == "Retrieved all data as JSON"

        field = payload(await tools.call_tool(
            "download_data", {"download_key": DOWNLOAD_KEY, "parameter": "temp"},
        ))
        assert field == {"data": "20", "parameter": "temp", "message": "Retrieved parameter 'temp'"}

        snap = stats.snapshot()
        assert (snap.upload_count, snap.download_count) == (1, 2)

    async def test_patch(self, tools):
        result = await tools.call_tool(
            "patch_data",
            {"upload_key": UPLOAD_KEY, "path": "room1", "parameters": {"temp": "21"}},
            base_url=BASE,
        )
        data = payload(result)
        assert data["message"] == "Data merged successfully"
        assert data["path"] == "room1"
        assert data["parameter_urls"]["temp"] == f"{BASE}/d/{DOWNLOAD_KEY}/plain/room1/temp"

        nested = payload(await tools.call_tool(
            "download_data", {"download_key": DOWNLOAD_KEY, "parameter": "room1"},
        ))
        assert nested["data"] == {"temp": "21"}

    async def test_values_not_escaped(self, tools):
        await tools.call_tool("upload_data", {"upload_key": UPLOAD_KEY, "parameters": {"v": "<b>"}})
        data = payload(await tools.call_tool("download_data", {"download_key": DOWNLOAD_KEY, "parameter": "v"}))
        assert data["data"] == "<b>"

    async def test_delete(self, tools):
        await tools.call_tool("upload_data", {"upload_key": UPLOAD_KEY, "parameters": {"v": "1"}})
        data = payload(await tools.call_tool("delete_data", {"upload_key": UPLOAD_KEY}))
        assert data == {"message": "Data deleted successfully", "success": True}

        missing = await tools.call_tool("download_data", {"download_key": DOWNLOAD_KEY})
        assert missing.is_error
        assert payload(missing) == {"error": "Data not found"}

    async def test_bad_key_is_tool_error(self, tools, stats):
        result = await tools.call_tool("upload_data", {"upload_key": "zz", "parameters": {}})
        assert result.is_error
        assert result.to_dict()["isError"] is True
        assert stats.snapshot().http_error_count == 1

    async def test_unknown_tool(self, tools):
        with pytest.raises(KeyError):
            await tools.call_tool("drop_tables")


class TestJsonRpc:
    """Tests for JSON-RPC framing."""

    async def test_initialize(self, tools):
        reply = await tools.handle_rpc(rpc("initialize", {"protocolVersion": "2024-11-05"}))
        assert reply["id"] == 1
        assert reply["result"]["serverInfo"]["name"] == "evstore"
        assert "tools" in reply["result"]["capabilities"]

    async def test_ping(self, tools):
        assert (await tools.handle_rpc(rpc("ping")))["result"] == {}

    async def test_tools_list(self, tools):
        reply = await tools.handle_rpc(rpc("tools/list"))
        assert len(reply["result"]["tools"]) == 5

    async def test_tools_call(self, tools):
        reply = await tools.handle_rpc(
            rpc("tools/call", {"name": "upload_data", "arguments": {"upload_key": UPLOAD_KEY, "parameters": {"a": "1"}}}),
            base_url=BASE,
        )
        result = reply["result"]
        assert result["isError"] is False
        assert json.loads(result["content"][0]["text"])["download_url"] == f"{BASE}/d/{DOWNLOAD_KEY}/json"

    async def test_notification_has_no_reply(self, tools):
        assert await tools.handle_rpc({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None

    async def test_unknown_method(self, tools):
        reply = await tools.handle_rpc(rpc("resources/list"))
        assert reply["error"]["code"] == METHOD_NOT_FOUND

    async def test_unknown_tool(self, tools):
        reply = await tools.handle_rpc(rpc("tools/call", {"name": "nope"}))
        assert reply["error"]["code"] == INVALID_PARAMS

    async def test_invalid_arguments(self, tools):
        reply = await tools.handle_rpc(rpc("tools/call", {"name": "delete_data", "arguments": {}}))
        assert reply["error"]["code"] == INVALID_PARAMS

    async def test_not_jsonrpc(self, tools):
        reply = await tools.handle_rpc({"id": 3, "method": "ping"})
        assert reply["error"]["code"] == INVALID_REQUEST


class TestHttp:
    """Tests for the /mcp routes."""

    async def test_info(self, get):
        response = await get("/mcp")
        data = json.loads(response.body)
        assert response.status == 200
        assert "upload_data" in data["capabilities"]["tools"]["available"]

    async def test_post(self, application):
        request = Request.from_raw(
            "POST", "/mcp", {"Host": "example.test"}, body=json.dumps(rpc("tools/list")).encode(),
        )
        response = await application.router.dispatch(request)
        assert response.status == 200
        assert len(json.loads(response.body)["result"]["tools"]) == 5

    async def test_post_parse_error(self, application):
        request = Request.from_raw("POST", "/mcp", body=b"{not json")
        response = await application.router.dispatch(request)
        assert response.status == 400
        assert json.loads(response.body)["error"]["code"] == PARSE_ERROR

    async def test_post_notification(self, application):
        request = Request.from_raw(
            "POST", "/mcp", body=json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}).encode(),
        )
        response = await application.router.dispatch(request)
        assert response.status == 202
