"""Per-server connection lifecycle with timeout racing and failure isolation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from mcphub.mcp.connection import ClientLike, ServerConnection, SessionFactory
from mcphub.mcp.errors import (
    HandshakeError,
    MCPHubError,
    ToolDiscoveryError,
    UnknownServerError,
    describe_exception,
    error_category,
)
from mcphub.mcp.race import race_with_timeout
from mcphub.mcp.registry import ServerRegistry
from mcphub.mcp.transport import TransportFactory
from mcphub.models.server import (
    Connected,
    Connecting,
    Disabled,
    Failed,
    ServerConfig,
    ServerInfo,
    ServerStatus,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_TIMEOUT_SECONDS = 5.0


class ConnectionSupervisor:
    """Drive connect/disconnect/enable transitions for registered servers.

    Every connect takes a fresh attempt number from the registry and only
    writes its outcome back while that number is still current. Disconnect,
    re-registration, a newer connect and cleanup all advance or remove the
    record, so a late finisher discards its own result and releases whatever
    it opened.
    """

    def __init__(
        self,
        registry: ServerRegistry | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        session_factory: SessionFactory | None = None,
        close_timeout_seconds: float = DEFAULT_CLOSE_TIMEOUT_SECONDS,
    ) -> None:
        self._registry = registry or ServerRegistry()
        self._registry.set_displaced_handler(self._reap)
        self._transports = transport_factory or TransportFactory()
        self._session_factory = session_factory
        self._close_timeout_seconds = close_timeout_seconds
        self._reaping: set[asyncio.Task[None]] = set()
        self._in_flight: dict[str, int] = {}

    @property
    def registry(self) -> ServerRegistry:
        return self._registry

    def add_server(self, name: str, config: ServerConfig) -> ServerInfo:
        return self._registry.add_server(name, config)

    def get_server(self, name: str) -> ServerInfo | None:
        return self._registry.get_server(name)

    def get_servers(self) -> list[ServerInfo]:
        return self._registry.get_servers()

    async def connect(self, name: str) -> ServerStatus:
        """Connect (or reconnect) one server and return its resulting status."""
        record = self._registry.record(name)
        if record is None:
            unknown = UnknownServerError(name)
            return Failed(str(unknown), category=unknown.category)
        config = record.config
        if not config.enabled:
            return Disabled()

        attempt = self._registry.next_attempt()
        self._registry.replace(record.with_status(Connecting(), attempt=attempt))
        if record.connection is not None:
            self._reap(name, record.connection)

        self._in_flight[name] = attempt
        try:
            return await self._attempt(name, config, attempt)
        finally:
            if self._in_flight.get(name) == attempt:
                del self._in_flight[name]

    async def _attempt(self, name: str, config: ServerConfig, attempt: int) -> ServerStatus:
        connection: ServerConnection | None = None
        try:
            transport = self._transports.build(config)
            connection = ServerConnection(name, transport, self._session_factory)
            client = await race_with_timeout(
                self._handshake(connection),
                config.timeout_seconds,
                timeout_message=f"Connection timeout after {config.timeout}ms",
            )
            tools = await race_with_timeout(
                self._discover(client),
                config.timeout_seconds,
                timeout_message=f"List tools timeout after {config.timeout}ms",
            )
        except asyncio.CancelledError:
            if connection is not None:
                self._reap(name, connection)
            self._settle(
                name,
                attempt,
                Failed("Connection attempt cancelled", category="unknown"),
                None,
            )
            raise
        except Exception as exc:  # noqa: BLE001
            if connection is not None:
                self._reap(name, connection)
            failed = Failed(
                describe_exception(exc),
                category=error_category(exc, "handshake_error"),
            )
            logger.warning("Failed to connect to MCP server '%s': %s", name, failed.error)
            return self._settle(name, attempt, failed, None)

        logger.info(
            "Connected to MCP server '%s' via %s (%d tools)", name, transport.kind, len(tools)
        )
        return self._settle(name, attempt, Connected(tools), connection)

    async def connect_all(self) -> dict[str, ServerStatus]:
        """Connect every registered server concurrently; never fails as a whole."""
        names = self._registry.names()
        async with asyncio.TaskGroup() as group:
            tasks = {
                name: group.create_task(self._connect_isolated(name), name=f"mcphub-connect:{name}")
                for name in names
            }
        return {name: task.result() for name, task in tasks.items()}

    async def disconnect(self, name: str) -> None:
        """Release a server's connection; close errors are logged, not raised.

        A connected server, or one with a connect attempt in flight, ends up
        `Failed("Disconnected")` since a connected status without handles cannot
        be represented. Any other status is kept, including the `Connecting` of a
        server that was registered but never connected.
        """
        record = self._registry.record(name)
        if record is None:
            return
        if isinstance(record.status, Connected) or (
            isinstance(record.status, Connecting) and name in self._in_flight
        ):
            status: ServerStatus = Failed("Disconnected", category="disconnected")
        else:
            status = record.status
        self._registry.replace(
            record.with_status(status, attempt=self._registry.next_attempt())
        )
        if record.connection is not None:
            await self._close(name, record.connection)

    async def set_enabled(self, name: str, enabled: bool) -> ServerStatus | None:
        """Runtime toggle; the registered config is never rewritten.

        Enabling a server whose config says `enabled: false` goes through
        `connect` and therefore stays `Disabled`.
        """
        record = self._registry.record(name)
        if record is None:
            return None
        if enabled and isinstance(record.status, Disabled):
            return await self.connect(name)
        if not enabled and not isinstance(record.status, Disabled):
            await self.disconnect(name)
            current = self._registry.record(name)
            if current is not None:
                self._registry.replace(
                    current.with_status(Disabled(), attempt=self._registry.next_attempt())
                )
            return Disabled()
        return record.status

    async def cleanup(self) -> None:
        """Disconnect everything concurrently, wait for releases, forget all servers."""
        names = self._registry.names()
        async with asyncio.TaskGroup() as group:
            for name in names:
                group.create_task(self._disconnect_isolated(name), name=f"mcphub-disconnect:{name}")
        await self.drain()
        self._registry.clear()

    async def drain(self) -> None:
        """Wait for background releases of abandoned connections."""
        while self._reaping:
            await asyncio.gather(*list(self._reaping), return_exceptions=True)

    async def _handshake(self, connection: ServerConnection) -> ClientLike:
        try:
            client = await connection.open()
            await client.initialize()
        except MCPHubError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise HandshakeError(describe_exception(exc)) from exc
        return client

    async def _discover(self, client: ClientLike) -> tuple[ToolDescriptor, ...]:
        try:
            listed = await client.list_tools()
        except Exception as exc:  # noqa: BLE001
            raise ToolDiscoveryError(describe_exception(exc)) from exc
        return tuple(_to_descriptor(tool) for tool in listed.tools)

    def _settle(
        self,
        name: str,
        attempt: int,
        status: ServerStatus,
        connection: ServerConnection | None,
    ) -> ServerStatus:
        current = self._registry.record(name)
        if current is None or current.attempt != attempt:
            logger.debug("Discarding superseded connect result for '%s'", name)
            if connection is not None:
                self._reap(name, connection)
            if current is None:
                return Failed(
                    f"Server {name} was removed while connecting",
                    category="unknown_server",
                )
            return current.status
        self._registry.replace(current.with_status(status, connection=connection))
        return status

    async def _connect_isolated(self, name: str) -> ServerStatus:
        try:
            return await self.connect(name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Connect task for '%s' failed: %s", name, exc)
            return Failed(describe_exception(exc))

    async def _disconnect_isolated(self, name: str) -> None:
        try:
            await self.disconnect(name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error disconnecting from '%s': %s", name, exc)

    def _reap(self, name: str, connection: ServerConnection) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; cannot release connection for '%s'", name)
            return
        task = loop.create_task(self._close(name, connection), name=f"mcphub-reap:{name}")
        self._reaping.add(task)
        task.add_done_callback(self._reaping.discard)

    async def _close(self, name: str, connection: ServerConnection) -> None:
        try:
            await connection.close(self._close_timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error closing connection for '%s': %s", name, describe_exception(exc))


def _to_descriptor(tool: Any) -> ToolDescriptor:
    schema = getattr(tool, "inputSchema", None)
    if hasattr(schema, "model_dump"):
        schema = schema.model_dump(mode="json", exclude_none=True)
    return ToolDescriptor(
        name=tool.name,
        description=getattr(tool, "description", None),
        input_schema=schema,
    )
