"""
Tool-Call Adapter: JSON-RPC Access to the Five Record Operations

Exposes DataService as five tools for agent clients:

    generate_key_pair()
    upload_data(upload_key, parameters)
    patch_data(upload_key, path, parameters)
    download_data(download_key, parameter?)
    delete_data(upload_key)

Transport is JSON-RPC 2.0 over POST /mcp (``initialize``, ``ping``,
``tools/list``, ``tools/call``). GET /mcp returns a server info document.
Every tool answers with one text content item holding indented JSON.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional
from urllib.parse import quote

from evstore.api.router import EvStoreRouter, Request, Response
from evstore.core.constants import MCP_PROTOCOL_VERSION, SERVER_NAME, SERVER_VERSION
from evstore.observability.stats import StatsAggregator
from evstore.records.tree import to_plain
from evstore.service.data_service import DataService

logger = logging.getLogger(__name__)

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


class ToolInputError(ValueError):
    """Tool arguments do not match the tool's input schema."""


# =============================================================================
# TOOL INPUTS
# =============================================================================

def _require_str(arguments: Mapping[str, Any], name: str) -> str:
    value = arguments.get(name)
    if not isinstance(value, str) or not value:
        raise ToolInputError(f"'{name}' must be a non-empty string")
    return value


def _parameters(arguments: Mapping[str, Any]) -> dict[str, str]:
    raw = arguments.get("parameters", {})
    if not isinstance(raw, Mapping):
        raise ToolInputError("'parameters' must be an object")
    params: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, (dict, list)):
            raise ToolInputError(f"parameter '{key}' must be a scalar")
        params[str(key)] = value if isinstance(value, str) else json.dumps(value)
    return params


@dataclass(frozen=True, slots=True)
class UploadDataInput:
    upload_key: str
    parameters: dict[str, str]

    @classmethod
    def parse(cls, arguments: Mapping[str, Any]) -> UploadDataInput:
        return cls(_require_str(arguments, "upload_key"), _parameters(arguments))


@dataclass(frozen=True, slots=True)
class PatchDataInput:
    upload_key: str
    path: str
    parameters: dict[str, str]

    @classmethod
    def parse(cls, arguments: Mapping[str, Any]) -> PatchDataInput:
        path = arguments.get("path", "")
        if not isinstance(path, str):
            raise ToolInputError("'path' must be a string")
        return cls(_require_str(arguments, "upload_key"), path, _parameters(arguments))


@dataclass(frozen=True, slots=True)
class DownloadDataInput:
    download_key: str
    parameter: str = ""

    @classmethod
    def parse(cls, arguments: Mapping[str, Any]) -> DownloadDataInput:
        parameter = arguments.get("parameter") or ""
        if not isinstance(parameter, str):
            raise ToolInputError("'parameter' must be a string")
        return cls(_require_str(arguments, "download_key"), parameter)


@dataclass(frozen=True, slots=True)
class DeleteDataInput:
    upload_key: str

    @classmethod
    def parse(cls, arguments: Mapping[str, Any]) -> DeleteDataInput:
        return cls(_require_str(arguments, "upload_key"))


# =============================================================================
# TOOL REGISTRY
# =============================================================================

@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of one tool call."""

    payload: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False

    @classmethod
    def failure(cls, message: str) -> ToolResult:
        return cls({"error": message}, is_error=True)

    @property
    def text(self) -> str:
        return json.dumps(self.payload, indent=2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": [{"type": "text", "text": self.text}],
            "isError": self.is_error,
        }


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


_UPLOAD_KEY_SCHEMA = {"type": "string", "description": "The upload key (256-bit hex string)"}
_PARAMETERS_SCHEMA = {
    "type": "object",
    "additionalProperties": {"type": "string"},
    "description": "Key-value pairs to store",
}

TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="generate_key_pair",
        description=(
            "Generate a new upload/download key pair. The upload key writes data "
            "and must be kept secret; the download key only reads it."
        ),
        input_schema={"type": "object", "properties": {}},
    ),
    ToolSpec(
        name="upload_data",
        description="Store key-value data, replacing whatever the upload key held before.",
        input_schema={
            "type": "object",
            "properties": {"upload_key": _UPLOAD_KEY_SCHEMA, "parameters": _PARAMETERS_SCHEMA},
            "required": ["upload_key", "parameters"],
        },
    ),
    ToolSpec(
        name="patch_data",
        description=(
            "Merge key-value data into the existing record at a nested path "
            "(e.g. 'room1/sensors'), keeping everything else."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "upload_key": _UPLOAD_KEY_SCHEMA,
                "path": {"type": "string", "description": "Nested path; empty merges at the root"},
                "parameters": _PARAMETERS_SCHEMA,
            },
            "required": ["upload_key", "parameters"],
        },
    ),
    ToolSpec(
        name="download_data",
        description="Read the whole record, or one parameter path such as 'temp' or 'room1/temp'.",
        input_schema={
            "type": "object",
            "properties": {
                "download_key": {"type": "string", "description": "The download key"},
                "parameter": {"type": "string", "description": "Optional parameter path"},
            },
            "required": ["download_key"],
        },
    ),
    ToolSpec(
        name="delete_data",
        description="Delete the record held by an upload key.",
        input_schema={
            "type": "object",
            "properties": {"upload_key": _UPLOAD_KEY_SCHEMA},
            "required": ["upload_key"],
        },
    ),
)


class ToolAdapter:
    """
    Forwards tool calls into DataService.

    Usage:
        tools = ToolAdapter(service, stats)
        result = await tools.call_tool("upload_data", {...}, base_url="http://host")
        tools.register(router)
    """

    __slots__ = ("_service", "_stats", "_dispatch")

    def __init__(self, service: DataService, stats: StatsAggregator) -> None:
        self._service = service
        self._stats = stats
        self._dispatch: dict[str, Callable[[Mapping[str, Any], str], Awaitable[ToolResult]]] = {
            "generate_key_pair": self._generate_key_pair,
            "upload_data": self._upload_data,
            "patch_data": self._patch_data,
            "download_data": self._download_data,
            "delete_data": self._delete_data,
        }

    @staticmethod
    def list_tools() -> list[dict[str, Any]]:
        return [tool.to_dict() for tool in TOOLS]

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        base_url: str = "",
    ) -> ToolResult:
        """
        Run one tool.

        Raises:
            KeyError: Unknown tool name.
            ToolInputError: Arguments failed validation.
        """
        handler = self._dispatch[name]
        if arguments is not None and not isinstance(arguments, Mapping):
            raise ToolInputError("'arguments' must be an object")
        return await handler(arguments or {}, base_url)

    def _failure(self, error: Any) -> ToolResult:
        self._stats.increment_http_errors()
        return ToolResult.failure(getattr(error, "message", str(error)))

    # -------------------------------------------------------------------------
    # TOOLS
    # -------------------------------------------------------------------------
    async def _generate_key_pair(self, arguments: Mapping[str, Any], base_url: str) -> ToolResult:
        result = await self._service.generate_key_pair()
        if result.is_err():
            return self._failure(result.error)
        upload_key, download_key = result.unwrap()
        return ToolResult({
            "upload_key": upload_key,
            "download_key": download_key,
            "upload_url": f"{base_url}/u/{upload_key}?param=value",
            "download_url": f"{base_url}/d/{download_key}/json",
            "message": (
                "Key pair generated successfully. Use the upload key to store data "
                "and the download key to retrieve it. The upload key must be kept secret."
            ),
        })

    async def _upload_data(self, arguments: Mapping[str, Any], base_url: str) -> ToolResult:
        params = UploadDataInput.parse(arguments)
        result = await self._service.upload(params.upload_key, params.parameters)
        if result.is_err():
            return self._failure(result.error)
        self._stats.increment_uploads()
        download_key, _ = result.unwrap()
        return ToolResult({
            "message": "Data uploaded successfully",
            "download_url": f"{base_url}/d/{download_key}/json",
            "parameter_urls": {
                key: f"{base_url}/d/{download_key}/plain/{quote(key, safe='')}"
                for key in params.parameters
            },
            "parameter_count": len(params.parameters),
        })

    async def _patch_data(self, arguments: Mapping[str, Any], base_url: str) -> ToolResult:
        params = PatchDataInput.parse(arguments)
        result = await self._service.patch(params.upload_key, params.path, params.parameters)
        if result.is_err():
            return self._failure(result.error)
        self._stats.increment_uploads()
        download_key, _ = result.unwrap()
        prefix = f"{params.path.strip('/')}/" if params.path.strip("/") else ""
        return ToolResult({
            "message": "Data merged successfully",
            "download_url": f"{base_url}/d/{download_key}/json",
            "parameter_urls": {
                key: f"{base_url}/d/{download_key}/plain/{quote(prefix + key, safe='/')}"
                for key in params.parameters
            },
            "path": params.path,
            "parameter_count": len(params.parameters),
        })

    async def _download_data(self, arguments: Mapping[str, Any], base_url: str) -> ToolResult:
        params = DownloadDataInput.parse(arguments)
        if not params.parameter:
            raw = await self._service.download_json(params.download_key)
            if raw.is_err():
                return self._failure(raw.error)
            self._stats.increment_downloads()
            return ToolResult({
                "data": json.loads(raw.unwrap()),
                "message": "Retrieved all data as JSON",
            })

        value = await self._service.download_field(params.download_key, params.parameter)
        if value.is_err():
            return self._failure(value.error)
        self._stats.increment_downloads()
        return ToolResult({
            "data": to_plain(value.unwrap()),
            "parameter": params.parameter,
            "message": f"Retrieved parameter '{params.parameter}'",
        })

    async def _delete_data(self, arguments: Mapping[str, Any], base_url: str) -> ToolResult:
        params = DeleteDataInput.parse(arguments)
        result = await self._service.delete(params.upload_key)
        if result.is_err():
            return self._failure(result.error)
        return ToolResult({"message": "Data deleted successfully", "success": True})

    # -------------------------------------------------------------------------
    # JSON-RPC
    # -------------------------------------------------------------------------
    @staticmethod
    def _rpc_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}

    async def handle_rpc(self, message: Any, base_url: str = "") -> Optional[dict[str, Any]]:
        """
        Answer one JSON-RPC message.

        Returns None for notifications (messages without an ``id``).
        """
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return self._rpc_error(None, INVALID_REQUEST, "Invalid Request")

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}
        if "id" not in message:
            return None

        if method == "initialize":
            result: dict[str, Any] = {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {"tools": {"listChanged": False}},
                "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            }
        elif method == "ping":
            result = {}
        elif method == "tools/list":
            result = {"tools": self.list_tools()}
        elif method == "tools/call":
            name = params.get("name") if isinstance(params, dict) else None
            if name not in self._dispatch:
                return self._rpc_error(request_id, INVALID_PARAMS, f"Unknown tool: {name}")
            try:
                outcome = await self.call_tool(name, params.get("arguments"), base_url)
            except ToolInputError as e:
                return self._rpc_error(request_id, INVALID_PARAMS, str(e))
            result = outcome.to_dict()
        else:
            return self._rpc_error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------
    async def info(self, request: Request) -> Response:
        """Server information document for GET /mcp."""
        return Response.json({
            "protocol": "Model Context Protocol (MCP)",
            "server": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "capabilities": {"tools": {"available": [tool.name for tool in TOOLS]}},
            "transport": "HTTP (JSON-RPC 2.0)",
            "usage": "Send POST requests with JSON-RPC 2.0 messages to interact with the server.",
        })

    async def rpc(self, request: Request) -> Response:
        try:
            message = request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return Response.json(self._rpc_error(None, PARSE_ERROR, "Parse error"), status=400)

        reply = await self.handle_rpc(message, base_url=f"http://{request.host}")
        if reply is None:
            return Response(status=202)
        return Response.json(reply)

    def register(self, router: EvStoreRouter) -> None:
        router.add("/mcp", self.info, methods=("GET",))
        router.add("/mcp", self.rpc, methods=("POST",))


__all__ = [
    "TOOLS",
    "ToolAdapter",
    "ToolInputError",
    "ToolResult",
    "ToolSpec",
]
