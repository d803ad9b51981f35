"""Server configuration, status and tool domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

type JSONValue = None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]
type ContentBlock = dict[str, Any]
type TransportKind = Literal["stdio", "http"]
type ErrorCategory = Literal[
    "config_error",
    "connect_timeout",
    "handshake_error",
    "tool_discovery_error",
    "unknown_server",
    "tool_not_connected",
    "tool_invocation_error",
    "disconnected",
    "unknown",
]

DEFAULT_TIMEOUT_MS = 30000


class ServerConfig(BaseModel):
    """One tool-provider server definition."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    url: str | None = None
    enabled: bool = True
    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)

    @property
    def transport_kind(self) -> TransportKind:
        """A url always selects HTTP, even when a command is also present."""
        return "http" if self.url else "stdio"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000


class StatusKind(StrEnum):
    """Display tag for each server status variant."""

    DISABLED = "disabled"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Tool discovered on a server."""

    name: str
    description: str | None = None
    input_schema: JSONValue = None


@dataclass(frozen=True, slots=True)
class Disabled:
    state: ClassVar[StatusKind] = StatusKind.DISABLED


@dataclass(frozen=True, slots=True)
class Connecting:
    state: ClassVar[StatusKind] = StatusKind.CONNECTING


@dataclass(frozen=True, slots=True)
class Connected:
    """Handshake and discovery completed."""

    state: ClassVar[StatusKind] = StatusKind.CONNECTED

    tools: tuple[ToolDescriptor, ...]


@dataclass(frozen=True, slots=True)
class Failed:
    """Last attempt failed; retryable through connect."""

    state: ClassVar[StatusKind] = StatusKind.FAILED

    error: str
    category: ErrorCategory = "unknown"


type ServerStatus = Disabled | Connecting | Connected | Failed


def initial_status(config: ServerConfig) -> ServerStatus:
    """Status of a freshly registered server, derived from `enabled` only."""
    return Connecting() if config.enabled else Disabled()


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Read-only projection of one registered server."""

    name: str
    config: ServerConfig
    status: ServerStatus
    transport_kind: TransportKind


@dataclass(frozen=True, slots=True)
class ServerTool:
    """Tool paired with the server that provides it."""

    server_name: str
    tool: ToolDescriptor


@dataclass(slots=True)
class ToolCallResult:
    """Structured outcome of one routed tool call."""

    content: list[ContentBlock] = field(default_factory=list)
    is_error: bool | None = None
    error_category: ErrorCategory | None = None

    @classmethod
    def error(cls, message: str, *, category: ErrorCategory) -> ToolCallResult:
        return cls(
            content=[{"type": "text", "text": message}],
            is_error=True,
            error_category=category,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": self.content}
        if self.is_error is not None:
            payload["isError"] = self.is_error
        return payload
