"""MCP routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mcphub.api.deps import get_gateway, get_supervisor, get_tool_router
from mcphub.api.schemas.mcp import (
    CallToolRequest,
    CallToolResponse,
    ConnectAllResponse,
    GatewayDescriptionResponse,
    GatewayRequest,
    GatewayResponse,
    MCPServerResponse,
    MCPServersResponse,
    RegisterMCPServerRequest,
    ServerStatusResponse,
    ServerSummaryResponse,
    ServerToolResponse,
    ServerToolsResponse,
    SetEnabledRequest,
)
from mcphub.core.gateway import MCPGateway
from mcphub.mcp.router import ToolRouter
from mcphub.mcp.supervisor import ConnectionSupervisor

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp"])


def _require_server(name: str, supervisor: ConnectionSupervisor) -> MCPServerResponse:
    info = supervisor.get_server(name)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    return MCPServerResponse.from_info(info)


@router.get("/servers", response_model=MCPServersResponse)
async def list_mcp_servers(
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> MCPServersResponse:
    return MCPServersResponse(
        items=[MCPServerResponse.from_info(info) for info in supervisor.get_servers()]
    )


@router.get("/servers/{name}", response_model=MCPServerResponse)
async def get_mcp_server(
    name: str,
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> MCPServerResponse:
    return _require_server(name, supervisor)


@router.post("/servers", response_model=MCPServerResponse, status_code=status.HTTP_201_CREATED)
async def register_mcp_server(
    request: RegisterMCPServerRequest,
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> MCPServerResponse:
    info = supervisor.add_server(request.name, request.config)
    return MCPServerResponse.from_info(info)


@router.post("/servers/connect", response_model=ConnectAllResponse)
async def connect_mcp_servers(
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> ConnectAllResponse:
    results = await supervisor.connect_all()
    return ConnectAllResponse(
        results={
            name: ServerStatusResponse.from_status(result) for name, result in results.items()
        }
    )


@router.post("/servers/{name}/connect", response_model=MCPServerResponse)
async def connect_mcp_server(
    name: str,
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> MCPServerResponse:
    _require_server(name, supervisor)
    await supervisor.connect(name)
    return _require_server(name, supervisor)


@router.post("/servers/{name}/disconnect", response_model=MCPServerResponse)
async def disconnect_mcp_server(
    name: str,
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> MCPServerResponse:
    _require_server(name, supervisor)
    await supervisor.disconnect(name)
    return _require_server(name, supervisor)


@router.post("/servers/{name}/enabled", response_model=MCPServerResponse)
async def set_mcp_server_enabled(
    name: str,
    request: SetEnabledRequest,
    supervisor: ConnectionSupervisor = Depends(get_supervisor),
) -> MCPServerResponse:
    _require_server(name, supervisor)
    await supervisor.set_enabled(name, request.enabled)
    return _require_server(name, supervisor)


@router.get("/tools", response_model=ServerToolsResponse)
async def list_mcp_tools(
    tool_router: ToolRouter = Depends(get_tool_router),
) -> ServerToolsResponse:
    return ServerToolsResponse(
        items=[ServerToolResponse.from_server_tool(item) for item in tool_router.get_all_tools()]
    )


@router.post("/tools/call", response_model=CallToolResponse, response_model_exclude_none=True)
async def call_mcp_tool(
    request: CallToolRequest,
    tool_router: ToolRouter = Depends(get_tool_router),
) -> CallToolResponse:
    result = await tool_router.call_tool(request.server, request.tool, request.arguments)
    return CallToolResponse.model_validate(
        {**result.to_payload(), "error_category": result.error_category}
    )


@router.get("/gateway/description", response_model=GatewayDescriptionResponse)
async def mcp_gateway_description(
    gateway: MCPGateway = Depends(get_gateway),
) -> GatewayDescriptionResponse:
    return GatewayDescriptionResponse(description=gateway.description())


@router.post("/gateway", response_model=GatewayResponse)
async def run_mcp_gateway(
    request: GatewayRequest,
    gateway: MCPGateway = Depends(get_gateway),
) -> GatewayResponse:
    result = await gateway.execute(
        request.action,
        server=request.server,
        tool=request.tool,
        arguments=request.arguments,
    )
    return GatewayResponse(
        text=result.text,
        action=result.action,
        success=result.success,
        server_name=result.server_name,
        tool_name=result.tool_name,
        error=result.error,
        result=result.result,
        servers=[
            ServerSummaryResponse(name=item.name, status=item.status, tools=item.tools)
            for item in result.servers
        ],
    )
