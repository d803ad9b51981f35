"""Single `mcp` agent tool: list servers/tools and call a tool by server."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from mcphub.mcp.router import ToolRouter
from mcphub.mcp.supervisor import ConnectionSupervisor
from mcphub.models.server import Connected, Connecting, Failed

NO_SERVERS_DESCRIPTION = (
    "MCP tool gateway. No servers configured. "
    "Add servers to ~/.mcphub/mcp.json or .mcp.json"
)


@dataclass(slots=True)
class ServerSummary:
    name: str
    status: str
    tools: list[str]


@dataclass(slots=True)
class GatewayResult:
    """Text shown to the agent plus structured details for callers."""

    text: str
    action: str
    success: bool
    server_name: str | None = None
    tool_name: str | None = None
    error: str | None = None
    result: Any = None
    servers: list[ServerSummary] = field(default_factory=list)


def format_content(content: Any) -> str:
    """Flatten tool result content into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if (
                isinstance(block, dict)
                and block.get("type") == "text"
                and isinstance(block.get("text"), str)
            ):
                parts.append(block["text"])
            else:
                parts.append(json.dumps(block))
        return "\n".join(parts)
    return json.dumps(content)


def build_description(supervisor: ConnectionSupervisor) -> str:
    servers = supervisor.get_servers()
    if not servers:
        return NO_SERVERS_DESCRIPTION

    lines = [
        "MCP tool gateway. Actions:",
        "- list: Show available servers and tools",
        "- call: Call a tool (requires server, tool, arguments)",
        "",
        "Available servers and tools:",
    ]
    for server in servers:
        status = server.status
        if isinstance(status, Connected):
            lines.append(f"  {server.name}:")
            for tool in status.tools:
                desc = f" - {tool.description}" if tool.description else ""
                lines.append(f"    - {tool.name}{desc}")
        elif isinstance(status, Failed):
            lines.append(f"  {server.name}: (failed: {status.error})")
        elif isinstance(status, Connecting):
            lines.append(f"  {server.name}: (connecting...)")
        else:
            lines.append(f"  {server.name}: (disabled)")
    return "\n".join(lines)


class MCPGateway:
    """Agent-facing front for the supervisor and router."""

    def __init__(self, supervisor: ConnectionSupervisor, router: ToolRouter) -> None:
        self._supervisor = supervisor
        self._router = router

    def description(self) -> str:
        return build_description(self._supervisor)

    async def execute(
        self,
        action: str,
        *,
        server: str | None = None,
        tool: str | None = None,
        arguments: dict[str, Any] | None = None,
    ) -> GatewayResult:
        if action == "list":
            return self._list()
        if action == "call":
            return await self._call(server, tool, arguments or {})
        return GatewayResult(
            text=f"Unknown action: {action}",
            action=action,
            success=False,
            error=f"Unknown action: {action}",
        )

    def _list(self) -> GatewayResult:
        summaries = [
            ServerSummary(
                name=info.name,
                status=info.status.state.value,
                tools=(
                    [tool.name for tool in info.status.tools]
                    if isinstance(info.status, Connected)
                    else []
                ),
            )
            for info in self._supervisor.get_servers()
        ]
        lines = ["MCP Servers:"]
        for summary in summaries:
            if summary.status == "connected":
                lines.append(f"  {summary.name}: connected ({len(summary.tools)} tools)")
                lines.extend(f"    - {name}" for name in summary.tools)
            else:
                lines.append(f"  {summary.name}: {summary.status}")
        return GatewayResult(
            text="\n".join(lines),
            action="list",
            success=True,
            servers=summaries,
        )

    async def _call(
        self,
        server: str | None,
        tool: str | None,
        arguments: dict[str, Any],
    ) -> GatewayResult:
        if not server:
            return GatewayResult(
                text="Missing required parameter: server",
                action="call",
                success=False,
                error="Missing server",
            )
        if not tool:
            return GatewayResult(
                text="Missing required parameter: tool",
                action="call",
                success=False,
                error="Missing tool",
            )

        outcome = await self._router.call_tool(server, tool, arguments)
        text = format_content(outcome.content)
        if outcome.is_error:
            return GatewayResult(
                text=text,
                action="call",
                success=False,
                server_name=server,
                tool_name=tool,
                error=text,
            )
        return GatewayResult(
            text=text,
            action="call",
            success=True,
            server_name=server,
            tool_name=tool,
            result=outcome.content,
        )
