"""JSON-RPC 2.0 types and envelope helpers for the gateway."""

from __future__ import annotations

from rdpilot.rpc.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    JSON,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    NOT_INITIALIZED,
    PARSE_ERROR,
    RequestId,
    RpcError,
    jsonrpc_error,
    jsonrpc_result,
)

__all__ = [
    "JSON",
    "JSONRPC_VERSION",
    "RequestId",
    "RpcError",
    # Error codes
    "PARSE_ERROR",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "NOT_INITIALIZED",
    "jsonrpc_error",
    "jsonrpc_result",
]
