"""JSON-RPC 2.0 envelope types for the MCP gateway.

``RpcError`` is the only exception that becomes a JSON-RPC ``error``
object; everything else is mapped or wrapped by the gateway first.
"""

from __future__ import annotations

from typing import Any, Union

JSON = dict[str, Any]
RequestId = Union[str, int, None]

JSONRPC_VERSION = "2.0"

# Protocol-level codes
PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Any method other than initialize before the handshake
NOT_INITIALIZED = -32002


class RpcError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __repr__(self) -> str:
        return f"RpcError({self.code}, {self.message!r})"

    def to_dict(self) -> JSON:
        error: JSON = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def _envelope(request_id: RequestId, **member: Any) -> JSON:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, **member}


def jsonrpc_error(request_id: RequestId, error: RpcError) -> JSON:
    return _envelope(request_id, error=error.to_dict())


def jsonrpc_result(request_id: RequestId, result: Any) -> JSON:
    return _envelope(request_id, result=result)
