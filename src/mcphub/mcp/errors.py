"""Categorised failures raised inside the supervisor and router."""

from __future__ import annotations

from mcphub.models.server import ErrorCategory


class MCPHubError(RuntimeError):
    """Base failure with an explicit category."""

    category: ErrorCategory = "unknown"

    def __init__(self, message: str, *, category: ErrorCategory | None = None) -> None:
        super().__init__(message)
        if category is not None:
            self.category = category


class ConfigError(MCPHubError):
    """Server config names neither a command nor a url."""

    category: ErrorCategory = "config_error"


class ConnectTimeout(MCPHubError):
    """Handshake or tool discovery outlived the server timeout."""

    category: ErrorCategory = "connect_timeout"


class HandshakeError(MCPHubError):
    category: ErrorCategory = "handshake_error"


class ToolDiscoveryError(MCPHubError):
    category: ErrorCategory = "tool_discovery_error"


class UnknownServerError(MCPHubError):
    category: ErrorCategory = "unknown_server"

    def __init__(self, name: str) -> None:
        super().__init__(f"Server not found: {name}")
        self.name = name


class ToolNotConnectedError(MCPHubError):
    category: ErrorCategory = "tool_not_connected"

    def __init__(self, name: str) -> None:
        super().__init__(f"Server {name} not connected")
        self.name = name


class ToolInvocationError(MCPHubError):
    """Delegate raised, or reported an application-level tool failure."""

    category: ErrorCategory = "tool_invocation_error"


def describe_exception(exc: BaseException) -> str:
    """Render an exception message, naming the type when the message is empty.

    Single-member exception groups (as raised by the SDK's task groups) are
    unwrapped so the underlying failure is what gets reported.
    """
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    message = str(exc)
    if message:
        return message
    return f"{type(exc).__name__}: connection closed or timed out"


def error_category(exc: BaseException, default: ErrorCategory) -> ErrorCategory:
    if isinstance(exc, MCPHubError):
        return exc.category
    return default
