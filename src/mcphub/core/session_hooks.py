"""Session start/shutdown wiring between config files and the supervisor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from mcphub.core.config_loader import load_mcp_config
from mcphub.mcp.supervisor import ConnectionSupervisor
from mcphub.models.server import Connected, Failed

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    message: str
    level: Literal["info", "error"]


@dataclass(slots=True)
class StartupSummary:
    """Outcome of connecting the configured servers at session start."""

    connected: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    total_tools: int = 0
    notifications: list[Notification] = field(default_factory=list)


async def start_session(
    supervisor: ConnectionSupervisor,
    cwd: Path,
    *,
    home: Path | None = None,
) -> StartupSummary:
    """Register every configured server and connect them all in parallel."""
    configs = load_mcp_config(cwd, home=home)
    summary = StartupSummary()
    if not configs:
        return summary

    for name, config in configs.items():
        supervisor.add_server(name, config)

    results = await supervisor.connect_all()
    for name, status in results.items():
        if isinstance(status, Connected):
            summary.connected.append(f"{name} ({len(status.tools)} tools)")
        elif isinstance(status, Failed):
            summary.failed.append((name, status.error))

    summary.total_tools = sum(
        len(info.status.tools)
        for info in supervisor.get_servers()
        if isinstance(info.status, Connected)
    )
    for name, error in summary.failed:
        summary.notifications.append(Notification(f"MCP: {name} failed - {error}", "error"))
    if summary.connected:
        summary.notifications.append(
            Notification(
                f"MCP: {len(summary.connected)} server(s), {summary.total_tools} tools",
                "info",
            )
        )

    for notification in summary.notifications:
        if notification.level == "error":
            logger.warning(notification.message)
        else:
            logger.info(notification.message)
    return summary


async def shutdown_session(supervisor: ConnectionSupervisor) -> None:
    await supervisor.cleanup()
