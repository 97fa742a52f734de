"""FastAPI APIRouter for the gateway and the chat surface.

Routes:
- ``POST /mcp``              JSON-RPC 2.0 request -> response (gateway)
- ``GET  /mcp/capabilities`` protocol, server info, capability flags, tools, resources
- ``GET  /mcp/health``       liveness
- ``POST /chat``             one chat turn
- ``GET  /chat/stream``      one chat turn as Server-Sent Events
- ``GET  /sessions``         session listing

The runtime is read from ``app.state.runtime``, set by the application
lifespan in ``rdpilot.app``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from .rpc import PARSE_ERROR, RpcError, jsonrpc_error
from .runtime import Runtime

logger = logging.getLogger(__name__)

router = APIRouter()


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if not isinstance(runtime, Runtime):
        raise HTTPException(status_code=503, detail="Service unavailable: runtime not initialized.")
    return runtime


def health_payload() -> dict[str, Any]:
    return {"status": "healthy", "timestamp": datetime.now(UTC).isoformat()}


# ---------------------------------------------------------------------------
# JSON-RPC
# ---------------------------------------------------------------------------


@router.post("/mcp", response_model=None)
async def mcp_dispatch(request: Request, runtime: Runtime = Depends(get_runtime)) -> Any:
    """JSON-RPC 2.0 endpoint. Batches are not supported."""
    try:
        body = await request.json()
    except Exception:  # noqa: BLE001
        return jsonrpc_error(None, RpcError(PARSE_ERROR, "Parse error: invalid JSON"))

    if not isinstance(body, dict):
        return jsonrpc_error(None, RpcError(PARSE_ERROR, "Parse error: expected a JSON object"))

    response = await runtime.gateway.handle(body)
    if response is None:
        return Response(status_code=202)
    return response


@router.get("/mcp/capabilities")
async def mcp_capabilities(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.gateway.capabilities()


@router.get("/mcp/health")
async def mcp_health() -> dict[str, Any]:
    return health_payload()


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    text: str = ""
    conversation_id: str | None = None


@router.post("/chat")
async def chat(body: ChatRequest, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    reply = await runtime.assistant.respond(body.text, body.conversation_id)
    return reply.to_dict()


async def _sse_event(event: str, data: Any) -> str:
    """Format a single SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def _chat_stream(
    runtime: Runtime, text: str, conversation_id: str | None
) -> AsyncGenerator[str, None]:
    """Relay assistant progress as SSE.

    - ``event: progress`` for each intermediate update
    - ``event: done``     the final update; the stream then closes
    """
    async for event in runtime.assistant.stream(text, conversation_id):
        yield await _sse_event("done" if event.done else "progress", event.to_dict())


@router.get("/chat/stream")
async def chat_stream(
    text: str = "",
    conversation_id: str | None = None,
    runtime: Runtime = Depends(get_runtime),
) -> StreamingResponse:
    return StreamingResponse(
        _chat_stream(runtime, text, conversation_id),
        media_type="text/event-stream",
        headers={
            # Prevent proxies and browsers from buffering SSE frames
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.get("/sessions")
async def list_sessions(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return {"sessions": [r.to_dict() for r in runtime.orchestrator.sessions()]}
