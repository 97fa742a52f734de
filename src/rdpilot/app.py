"""FastAPI application factory.

The runtime (orchestrator, parser, gateway) is built in the lifespan and
torn down after in-flight requests drain. Pass a prebuilt runtime to
``create_app`` to control its wiring; it is still shut down with the app.

Usage:
    uvicorn rdpilot.app:app
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from .config import SERVER_INFO
from .http_rpc import health_payload, router
from .runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


def create_app(runtime: Runtime | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.runtime = runtime or build_runtime()
        logger.info("rdpilot %s started", SERVER_INFO.VERSION)

        yield

        await app.state.runtime.shutdown()
        app.state.runtime = None
        logger.info("rdpilot stopped")

    app = FastAPI(
        title="rdpilot",
        version=SERVER_INFO.VERSION,
        description="Remote desktop assistant: chat commands, session orchestration, MCP gateway.",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return health_payload()

    app.include_router(router)
    return app


app = create_app()
