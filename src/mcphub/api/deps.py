"""Shared API dependency providers.

The supervisor, router and gateway are built per application in
`create_app` and stored on `app.state`; routes receive them from here.
"""

from __future__ import annotations

from fastapi import Request

from mcphub.core.gateway import MCPGateway
from mcphub.mcp.router import ToolRouter
from mcphub.mcp.supervisor import ConnectionSupervisor


def get_supervisor(request: Request) -> ConnectionSupervisor:
    return request.app.state.supervisor


def get_tool_router(request: Request) -> ToolRouter:
    return request.app.state.tool_router


def get_gateway(request: Request) -> MCPGateway:
    return request.app.state.gateway
