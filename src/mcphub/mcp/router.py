"""Tool aggregation and call routing across connected servers."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from mcphub.mcp.errors import ToolInvocationError, ToolNotConnectedError, describe_exception
from mcphub.mcp.registry import ServerRegistry
from mcphub.models.server import Connected, ContentBlock, ServerTool, ToolCallResult

logger = logging.getLogger(__name__)


class ToolRouter:
    """Read-only view over the registry for tool listing and invocation."""

    def __init__(self, registry: ServerRegistry) -> None:
        self._registry = registry

    def get_all_tools(self) -> list[ServerTool]:
        """Tools of connected servers, in registry order then discovery order."""
        tools: list[ServerTool] = []
        for record in self._registry.records():
            if isinstance(record.status, Connected):
                tools.extend(
                    ServerTool(server_name=record.name, tool=tool) for tool in record.status.tools
                )
        return tools

    async def call_tool(
        self,
        server_name: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> ToolCallResult:
        """Invoke one tool; every failure comes back as an error result."""
        record = self._registry.record(server_name)
        if record is None or record.connection is None or not isinstance(record.status, Connected):
            not_connected = ToolNotConnectedError(server_name)
            return ToolCallResult.error(str(not_connected), category=not_connected.category)

        try:
            result = await record.connection.client.call_tool(
                tool_name,
                arguments or {},
                read_timeout_seconds=timedelta(milliseconds=record.config.timeout),
            )
        except Exception as exc:  # noqa: BLE001
            failure = ToolInvocationError(describe_exception(exc))
            logger.warning("Tool call %s/%s failed: %s", server_name, tool_name, failure)
            return ToolCallResult.error(str(failure), category=failure.category)

        is_error = getattr(result, "isError", None)
        return ToolCallResult(
            content=[_content_block(block) for block in getattr(result, "content", None) or []],
            is_error=is_error,
            error_category=ToolInvocationError.category if is_error else None,
        )


def _content_block(block: Any) -> ContentBlock:
    if hasattr(block, "model_dump"):
        return block.model_dump(mode="json", exclude_none=True)
    if isinstance(block, dict):
        return block
    return {"type": "text", "text": str(block)}
