"""MCP API schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from mcphub.models.server import (
    Connected,
    ErrorCategory,
    Failed,
    ServerConfig,
    ServerInfo,
    ServerStatus,
    ServerTool,
    StatusKind,
    ToolDescriptor,
)


class ToolDescriptorResponse(BaseModel):
    """Tool discovered on one server."""

    name: str
    description: str | None = None
    input_schema: Any = None

    @classmethod
    def from_descriptor(cls, tool: ToolDescriptor) -> ToolDescriptorResponse:
        return cls(name=tool.name, description=tool.description, input_schema=tool.input_schema)


class ServerStatusResponse(BaseModel):
    """Tagged status payload; tools/error only appear on their variants."""

    state: StatusKind
    tools: list[ToolDescriptorResponse] | None = None
    error: str | None = None
    error_category: ErrorCategory | None = None

    @classmethod
    def from_status(cls, status: ServerStatus) -> ServerStatusResponse:
        if isinstance(status, Connected):
            return cls(
                state=status.state,
                tools=[ToolDescriptorResponse.from_descriptor(tool) for tool in status.tools],
            )
        if isinstance(status, Failed):
            return cls(state=status.state, error=status.error, error_category=status.category)
        return cls(state=status.state)


class MCPServerResponse(BaseModel):
    """MCP server projection payload."""

    name: str
    config: ServerConfig
    status: ServerStatusResponse
    transport_kind: Literal["stdio", "http"]

    @classmethod
    def from_info(cls, info: ServerInfo) -> MCPServerResponse:
        return cls(
            name=info.name,
            config=info.config,
            status=ServerStatusResponse.from_status(info.status),
            transport_kind=info.transport_kind,
        )


class MCPServersResponse(BaseModel):
    """Collection of MCP servers."""

    items: list[MCPServerResponse]


class ConnectAllResponse(BaseModel):
    """Per-server outcome of a bulk connect."""

    results: dict[str, ServerStatusResponse]


class RegisterMCPServerRequest(BaseModel):
    """Create/register MCP server payload."""

    name: str = Field(min_length=1)
    config: ServerConfig


class SetEnabledRequest(BaseModel):
    enabled: bool


class ServerToolResponse(BaseModel):
    server_name: str
    tool: ToolDescriptorResponse

    @classmethod
    def from_server_tool(cls, item: ServerTool) -> ServerToolResponse:
        return cls(
            server_name=item.server_name,
            tool=ToolDescriptorResponse.from_descriptor(item.tool),
        )


class ServerToolsResponse(BaseModel):
    items: list[ServerToolResponse]


class CallToolRequest(BaseModel):
    """Tool invocation payload."""

    server: str
    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class CallToolResponse(BaseModel):
    """Call result shaped as `{content, isError?}`."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[dict[str, Any]]
    is_error: bool | None = Field(default=None, alias="isError")
    error_category: ErrorCategory | None = None


class GatewayRequest(BaseModel):
    """Gateway tool invocation payload."""

    action: Literal["list", "call"]
    server: str | None = None
    tool: str | None = None
    arguments: dict[str, Any] | None = None


class ServerSummaryResponse(BaseModel):
    name: str
    status: str
    tools: list[str]


class GatewayResponse(BaseModel):
    """Gateway tool text plus details."""

    text: str
    action: str
    success: bool
    server_name: str | None = None
    tool_name: str | None = None
    error: str | None = None
    result: Any = None
    servers: list[ServerSummaryResponse] = Field(default_factory=list)


class GatewayDescriptionResponse(BaseModel):
    description: str
