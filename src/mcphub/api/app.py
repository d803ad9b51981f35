"""FastAPI app entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from mcphub.api.routes.mcp import router as mcp_router
from mcphub.core.gateway import MCPGateway
from mcphub.core.session_hooks import shutdown_session, start_session
from mcphub.mcp.router import ToolRouter
from mcphub.mcp.supervisor import ConnectionSupervisor


def create_app(
    *,
    supervisor: ConnectionSupervisor | None = None,
    cwd: Path | None = None,
    home: Path | None = None,
    connect_on_startup: bool = True,
) -> FastAPI:
    owned = supervisor or ConnectionSupervisor()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if connect_on_startup:
            await start_session(owned, cwd or Path.cwd(), home=home)
        try:
            yield
        finally:
            await shutdown_session(owned)

    app = FastAPI(title="mcphub API", version="0.1.0", lifespan=lifespan)
    app.state.supervisor = owned
    app.state.tool_router = ToolRouter(owned.registry)
    app.state.gateway = MCPGateway(owned, app.state.tool_router)
    app.include_router(mcp_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=8000, reload=False)
