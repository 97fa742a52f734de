from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from rdpilot.errors import NotFoundError
from rdpilot.mcp_server import McpGateway
from rdpilot.profiles import SessionProfile
from rdpilot.runtime import Runtime


def _rpc(method: str, params: Any = None, req_id: int = 1) -> dict[str, Any]:
    request: dict[str, Any] = {"jsonrpc": "2.0", "id": req_id, "method": method}
    if params is not None:
        request["params"] = params
    return request


@pytest.fixture
def gateway(runtime: Runtime) -> McpGateway:
    return runtime.gateway


def _initialized(gateway: McpGateway) -> McpGateway:
    asyncio.run(gateway.handle(_rpc("initialize", {"clientInfo": {"name": "pytest", "version": "1"}})))
    return gateway


class TestHandshake:
    def test_initialize_returns_capabilities(self, gateway: McpGateway) -> None:
        resp = asyncio.run(gateway.handle(_rpc("initialize")))

        assert resp is not None
        assert resp["jsonrpc"] == "2.0"
        assert resp["id"] == 1
        result = resp["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"]["name"] == "rdpilot"
        assert result["capabilities"]["tools"] is True
        assert gateway.initialized

    def test_methods_rejected_before_initialize(self, gateway: McpGateway) -> None:
        for method in ("tools/list", "ping", "resources/list"):
            resp = asyncio.run(gateway.handle(_rpc(method)))
            assert resp["error"]["code"] == -32002  # type: ignore[index]

    def test_unknown_method_before_initialize_is_not_found(self, gateway: McpGateway) -> None:
        resp = asyncio.run(gateway.handle(_rpc("bogus/method")))
        assert resp["error"]["code"] == -32601  # type: ignore[index]


class TestEnvelope:
    def test_non_object_request(self, gateway: McpGateway) -> None:
        resp = asyncio.run(gateway.handle([1, 2, 3]))
        assert resp == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error: expected a JSON object"},
        }

    def test_wrong_version(self, gateway: McpGateway) -> None:
        resp = asyncio.run(gateway.handle({"jsonrpc": "1.0", "id": 7, "method": "ping"}))
        assert resp["id"] == 7  # type: ignore[index]
        assert resp["error"]["code"] == -32700  # type: ignore[index]

    def test_missing_method(self, gateway: McpGateway) -> None:
        resp = asyncio.run(gateway.handle({"jsonrpc": "2.0", "id": 2}))
        assert resp["error"]["code"] == -32601  # type: ignore[index]

    def test_params_must_be_object(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", "nope")))
        assert resp["error"]["code"] == -32602  # type: ignore[index]

    def test_notifications_have_no_response(self, gateway: McpGateway) -> None:
        note = {"jsonrpc": "2.0", "method": "notifications/initialized"}
        assert asyncio.run(gateway.handle(note)) is None

    def test_ping(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("ping", req_id=9)))
        assert resp == {"jsonrpc": "2.0", "id": 9, "result": {}}


class TestTools:
    def test_tools_list(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/list")))
        names = [t["name"] for t in resp["result"]["tools"]]  # type: ignore[index]
        assert "connect_rdp" in names
        assert all("inputSchema" in t for t in resp["result"]["tools"])  # type: ignore[index]

    def test_tools_call_requires_name(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", {})))
        assert resp["error"]["code"] == -32602  # type: ignore[index]
        assert "name" in resp["error"]["message"].lower()  # type: ignore[index]

    def test_tools_call_arguments_must_be_object(self, gateway: McpGateway) -> None:
        params = {"name": "list_rdp_sessions", "arguments": [1]}
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", params)))
        assert resp["error"]["code"] == -32602  # type: ignore[index]

    def test_unknown_tool(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", {"name": "format_disk"})))
        assert resp["error"]["code"] == -32601  # type: ignore[index]
        assert resp["error"]["message"] == "Tool not found: format_disk"  # type: ignore[index]

    def test_invalid_arguments_are_tool_errors(self, gateway: McpGateway, runtime: Runtime) -> None:
        params = {"name": "connect_rdp", "arguments": {"host": "a.example.com"}}
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", params)))

        assert "error" not in resp  # type: ignore[operator]
        assert resp["result"]["isError"] is True  # type: ignore[index]
        assert len(runtime.orchestrator) == 0

    def test_connect_then_list(self, gateway: McpGateway) -> None:
        _initialized(gateway)

        async def scenario():  # noqa: ANN202
            connect = await gateway.handle(
                _rpc("tools/call", {"name": "connect_rdp", "arguments": {"host": "a.example.com", "username": "u"}})
            )
            listing = await gateway.handle(_rpc("tools/call", {"name": "list_rdp_sessions"}, req_id=2))
            return connect, listing

        connect, listing = asyncio.run(scenario())
        assert connect["result"]["isError"] is False
        assert "a.example.com" in listing["result"]["content"][0]["text"]

    def test_internal_error_carries_exception_text(
        self, gateway: McpGateway, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def boom(*_args: Any, **_kwargs: Any) -> Any:
            raise RuntimeError("registry exploded")

        monkeypatch.setattr(gateway.tools, "call", boom)
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", {"name": "list_rdp_sessions"})))

        assert resp["error"]["code"] == -32603  # type: ignore[index]
        assert resp["error"]["message"] == "Internal error"  # type: ignore[index]
        assert resp["error"]["data"] == "registry exploded"  # type: ignore[index]

    def test_domain_error_uses_mapped_code(self, gateway: McpGateway, monkeypatch: pytest.MonkeyPatch) -> None:
        async def missing(*_args: Any, **_kwargs: Any) -> Any:
            raise NotFoundError("session gone", resource_type="session", resource_id="abc")

        monkeypatch.setattr(gateway.tools, "call", missing)
        resp = asyncio.run(_initialized(gateway).handle(_rpc("tools/call", {"name": "list_rdp_sessions"})))

        assert resp["error"]["code"] == -32003  # type: ignore[index]
        assert resp["error"]["data"]["resource_id"] == "abc"  # type: ignore[index]


class TestResources:
    def test_resources_list(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("resources/list")))
        uris = [r["uri"] for r in resp["result"]["resources"]]  # type: ignore[index]
        assert uris == ["rdpilot://sessions", "rdpilot://profiles", "rdpilot://tools"]

    def test_read_profiles(self, gateway: McpGateway, runtime: Runtime) -> None:
        runtime.profiles.save(SessionProfile(name="prod", host="prod.example.com"))
        resp = asyncio.run(_initialized(gateway).handle(_rpc("resources/read", {"uri": "rdpilot://profiles"})))

        content = resp["result"]["contents"][0]  # type: ignore[index]
        assert content["mimeType"] == "application/json"
        assert json.loads(content["text"])["profiles"][0]["name"] == "prod"

    def test_read_unknown_resource(self, gateway: McpGateway) -> None:
        resp = asyncio.run(_initialized(gateway).handle(_rpc("resources/read", {"uri": "rdpilot://nope"})))
        assert resp["error"]["code"] == -32602  # type: ignore[index]

    def test_capabilities_document(self, gateway: McpGateway) -> None:
        caps = gateway.capabilities()
        assert caps["protocolVersion"] == "2024-11-05"
        assert len(caps["tools"]) == 5
        assert len(caps["resources"]) == 3
