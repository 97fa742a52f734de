"""JSON-RPC 2.0 gateway speaking the MCP tool/resource methods.

Transport-agnostic: ``McpGateway.handle`` takes one decoded request object
and returns the response object, or None for notifications. The HTTP router
in ``http_rpc`` is one transport over it.

Error codes:
- -32700 malformed envelope: not an object, or a wrong ``jsonrpc`` version;
- -32601 missing/unknown method, or unknown tool name in ``tools/call``;
- -32602 params of the wrong shape;
- -32002 any method other than ``initialize`` before the handshake;
- domain errors use their mapped code with the error as ``data``;
- -32603 unexpected exception, with the exception text as ``data``.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .config import SERVER_INFO
from .errors import RdpilotError, get_error_code
from .mcp_tools import ToolRegistry
from .profiles import ProfileStore
from .rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    JSON,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    NOT_INITIALIZED,
    PARSE_ERROR,
    RpcError,
    jsonrpc_error,
    jsonrpc_result,
)
from .sessions import SessionOrchestrator

logger = logging.getLogger(__name__)

CAPABILITIES: dict[str, bool] = {"tools": True, "resources": True, "prompts": False, "logging": True}


@dataclass(frozen=True)
class Resource:
    uri: str
    name: str
    description: str
    mime_type: str = "application/json"

    def to_dict(self) -> JSON:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


RESOURCES: tuple[Resource, ...] = (
    Resource("rdpilot://sessions", "Sessions", "Current remote desktop sessions and their status"),
    Resource("rdpilot://profiles", "Profiles", "Saved connection profiles"),
    Resource("rdpilot://tools", "Tools", "Tool descriptors exposed by this server"),
)


class McpGateway:
    def __init__(
        self,
        tools: ToolRegistry,
        orchestrator: SessionOrchestrator,
        profiles: ProfileStore,
    ) -> None:
        self.tools = tools
        self.orchestrator = orchestrator
        self.profiles = profiles
        self._lock = threading.Lock()
        self._initialized = False
        self._methods: dict[str, Callable[[JSON], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "resources/list": self._resources_list,
            "resources/read": self._resources_read,
        }

    @property
    def initialized(self) -> bool:
        with self._lock:
            return self._initialized

    def server_info(self) -> JSON:
        return {"name": SERVER_INFO.NAME, "version": SERVER_INFO.VERSION}

    def capabilities(self) -> JSON:
        """Read-only description of the server, tools and resources."""
        return {
            "protocolVersion": SERVER_INFO.PROTOCOL_VERSION,
            "serverInfo": self.server_info(),
            "capabilities": dict(CAPABILITIES),
            "tools": [t.to_dict() for t in self.tools.list_tools()],
            "resources": [r.to_dict() for r in RESOURCES],
        }

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def handle(self, request: Any) -> JSON | None:
        if not isinstance(request, dict):
            return jsonrpc_error(None, RpcError(PARSE_ERROR, "Parse error: expected a JSON object"))

        req_id = request.get("id")
        method = request.get("method")
        correlation_id = uuid.uuid4().hex[:12]

        if method not in ("ping", "initialize"):
            logger.debug("RPC request [%s] method=%s req_id=%s", correlation_id, method, req_id)

        try:
            version = request.get("jsonrpc", JSONRPC_VERSION)
            if version != JSONRPC_VERSION:
                raise RpcError(PARSE_ERROR, f"Parse error: unsupported jsonrpc version {version!r}")
            if not isinstance(method, str) or not method:
                raise RpcError(METHOD_NOT_FOUND, "Method not found: method is required")

            if method.startswith("notifications/"):
                logger.debug("Notification %s", method)
                return None

            params = request.get("params")
            if params is None:
                params = {}
            if not isinstance(params, dict):
                raise RpcError(INVALID_PARAMS, "params must be an object")

            handler = self._methods.get(method)
            if handler is None:
                raise RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")
            if method != "initialize" and not self.initialized:
                raise RpcError(NOT_INITIALIZED, "Server not initialized")

            return jsonrpc_result(req_id, await handler(params))

        except RpcError as exc:
            logger.warning(
                "RPC error [%s] method=%s code=%d: %s",
                correlation_id,
                method,
                exc.code,
                exc.message,
            )
            return jsonrpc_error(req_id, exc)
        except RdpilotError as exc:
            logger.warning("RPC domain error [%s] method=%s: %s", correlation_id, method, exc.message)
            return jsonrpc_error(req_id, RpcError(get_error_code(exc), exc.message, exc.to_dict()))
        except Exception as exc:  # noqa: BLE001
            logger.exception("RPC internal error [%s] method=%s: %s", correlation_id, method, exc)
            return jsonrpc_error(req_id, RpcError(INTERNAL_ERROR, "Internal error", str(exc)))

    # -------------------------------------------------------------------------
    # Methods
    # -------------------------------------------------------------------------

    async def _initialize(self, params: JSON) -> JSON:
        client = params.get("clientInfo")
        if isinstance(client, dict):
            logger.info("MCP client %s %s initialized", client.get("name"), client.get("version", ""))
        with self._lock:
            self._initialized = True
        return {
            "protocolVersion": SERVER_INFO.PROTOCOL_VERSION,
            "serverInfo": self.server_info(),
            "capabilities": dict(CAPABILITIES),
        }

    async def _ping(self, params: JSON) -> JSON:  # noqa: ARG002
        return {}

    async def _tools_list(self, params: JSON) -> JSON:  # noqa: ARG002
        return {"tools": [t.to_dict() for t in self.tools.list_tools()]}

    async def _tools_call(self, params: JSON) -> JSON:
        name = params.get("name")
        arguments = params.get("arguments")
        if not isinstance(name, str) or not name:
            raise RpcError(INVALID_PARAMS, "name is required")
        if arguments is not None and not isinstance(arguments, dict):
            raise RpcError(INVALID_PARAMS, "arguments must be an object or null")
        if self.tools.get(name) is None:
            raise RpcError(METHOD_NOT_FOUND, f"Tool not found: {name}")
        return await self.tools.call(name, arguments)

    async def _resources_list(self, params: JSON) -> JSON:  # noqa: ARG002
        return {"resources": [r.to_dict() for r in RESOURCES]}

    async def _resources_read(self, params: JSON) -> JSON:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise RpcError(INVALID_PARAMS, "uri is required")

        if uri == "rdpilot://sessions":
            payload: Any = {"sessions": [r.to_dict() for r in self.orchestrator.sessions()]}
        elif uri == "rdpilot://profiles":
            payload = {"profiles": [p.to_dict() for p in self.profiles.list_all()]}
        elif uri == "rdpilot://tools":
            payload = {"tools": [t.to_dict() for t in self.tools.list_tools()]}
        else:
            raise RpcError(INVALID_PARAMS, f"Unknown resource: {uri}")

        return {
            "contents": [
                {"uri": uri, "mimeType": "application/json", "text": json.dumps(payload, indent=2)}
            ]
        }
