"""Owner task for one server's transport and client session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from datetime import timedelta
from typing import Any, Protocol

from mcp import ClientSession
from mcp import types as mcp_types

from mcphub.mcp.errors import HandshakeError
from mcphub.mcp.transport import TransportHandle

logger = logging.getLogger(__name__)

CLIENT_NAME = "mcphub"
CLIENT_VERSION = "0.1.0"


class ClientLike(Protocol):
    """Minimal MCP SDK client session surface used by the supervisor."""

    async def initialize(self) -> Any:
        """Run the MCP initialize handshake."""

    async def list_tools(self) -> Any:
        """Return an object with a `tools` sequence."""

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        read_timeout_seconds: timedelta | None = None,
    ) -> Any:
        """Call one tool."""


type SessionFactory = Callable[[Any, Any], AbstractAsyncContextManager[ClientLike]]


def default_session_factory(read: Any, write: Any) -> AbstractAsyncContextManager[ClientLike]:
    return ClientSession(
        read,
        write,
        client_info=mcp_types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION),
    )


class ServerConnection:
    """Transport plus client session, entered and exited inside one task.

    The SDK's stream contexts hold task groups that must be exited by the task
    that entered them, so a dedicated owner task keeps both contexts open until
    `close()` signals it.
    """

    def __init__(
        self,
        name: str,
        transport: TransportHandle,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.name = name
        self._transport = transport
        self._session_factory = session_factory or default_session_factory
        self._ready: asyncio.Future[ClientLike] | None = None
        self._closing = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._client: ClientLike | None = None
        self._released = False

    @property
    def client(self) -> ClientLike:
        if self._client is None:
            msg = f"Connection for {self.name} is not open"
            raise RuntimeError(msg)
        return self._client

    async def open(self) -> ClientLike:
        """Start the owner task and wait for the client session to be entered."""
        if self._task is not None:
            msg = f"Connection for {self.name} was already opened"
            raise RuntimeError(msg)
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[ClientLike] = loop.create_future()
        ready.add_done_callback(_retrieve_outcome)
        self._ready = ready
        self._task = loop.create_task(self._run(ready), name=f"mcphub-connection:{self.name}")
        return await asyncio.shield(ready)

    async def close(self, timeout: float) -> None:
        """Release the session and transport, waiting at most `timeout` seconds.

        An owner task that already ended on its own (the server process exited,
        say) still has its failure collected and raised here.
        """
        if self._released:
            return
        self._released = True
        self._closing.set()
        task = self._task
        if task is None:
            return
        if not task.done():
            if self._ready is None or not self._ready.done():
                task.cancel()
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if task not in done:
                task.cancel()
                msg = f"Closing {self.name} took longer than {timeout}s"
                raise TimeoutError(msg)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            raise error

    async def _run(self, ready: asyncio.Future[ClientLike]) -> None:
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(self._transport.open())
                client = await stack.enter_async_context(self._session_factory(read, write))
                self._client = client
                if not ready.done():
                    ready.set_result(client)
                await self._closing.wait()
        except asyncio.CancelledError:
            if not ready.done():
                msg = f"Connection to {self.name} closed while opening"
                ready.set_exception(HandshakeError(msg))
            raise
        except Exception as exc:
            if ready.done():
                logger.debug("Connection %s ended with error: %s", self.name, exc)
                raise
            # the opener owns failures raised before the session is published
            ready.set_exception(exc)
        finally:
            self._client = None
            self._closing.set()


def _retrieve_outcome(future: asyncio.Future[ClientLike]) -> None:
    if not future.cancelled():
        future.exception()
