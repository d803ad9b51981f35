"""Transport construction for stdio and HTTP tool-provider servers."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Literal

import httpx
from mcp import StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from mcphub.mcp.errors import ConfigError, describe_exception
from mcphub.models.server import ServerConfig

logger = logging.getLogger(__name__)

type TransportLabel = Literal["stdio", "streamable-http", "sse"]
type StreamContext = AbstractAsyncContextManager[tuple[Any, ...]]
type StdioConstructor = Callable[[ServerConfig], StreamContext]
type HTTPConstructor = Callable[[str], StreamContext]


@dataclass(slots=True)
class TransportHandle:
    """Constructed, not yet opened, transport for one server."""

    kind: TransportLabel
    context: StreamContext

    @asynccontextmanager
    async def open(self) -> AsyncIterator[tuple[Any, Any]]:
        """Enter the transport and yield its (read, write) stream pair."""
        async with self.context as streams:
            yield streams[0], streams[1]


@dataclass(frozen=True, slots=True)
class HTTPTransportOption:
    """One entry in the ordered list of HTTP construction attempts."""

    kind: Literal["streamable-http", "sse"]
    construct: HTTPConstructor


def subprocess_environment(overrides: dict[str, str]) -> dict[str, str]:
    """Ambient process environment with config overrides applied on top."""
    return {**os.environ, **overrides}


def default_stdio_constructor(config: ServerConfig) -> StreamContext:
    if config.command is None:
        msg = "Server config must have a 'command' for stdio transport"
        raise ConfigError(msg)
    params = StdioServerParameters(
        command=config.command,
        args=list(config.args),
        env=subprocess_environment(config.env),
        cwd=config.cwd,
    )
    return stdio_client(params)


DEFAULT_HTTP_OPTIONS: tuple[HTTPTransportOption, ...] = (
    HTTPTransportOption(kind="streamable-http", construct=lambda url: streamablehttp_client(url)),
    HTTPTransportOption(kind="sse", construct=lambda url: sse_client(url)),
)


class TransportFactory:
    """Build transport handles from server configs.

    HTTP servers try each option in `http_options` once, in order, and keep the
    first one whose construction does not raise. A transport that constructs
    fine but later fails to connect is reported as a connection failure; the
    remaining options are not retried at that point.
    """

    def __init__(
        self,
        *,
        stdio: StdioConstructor | None = None,
        http_options: Sequence[HTTPTransportOption] | None = None,
    ) -> None:
        self._stdio = stdio or default_stdio_constructor
        self._http_options = tuple(http_options or DEFAULT_HTTP_OPTIONS)

    def build(self, config: ServerConfig) -> TransportHandle:
        if config.url:
            return self._build_http(config.url)
        if config.command:
            return TransportHandle(kind="stdio", context=self._stdio(config))
        msg = "Server config must have either 'url' or 'command'"
        raise ConfigError(msg)

    def _build_http(self, url: str) -> TransportHandle:
        endpoint = self._validate_url(url)
        last_error: Exception | None = None
        for option in self._http_options:
            try:
                context = option.construct(endpoint)
            except Exception as exc:  # noqa: BLE001
                logger.debug("%s transport construction failed for %s: %s", option.kind, url, exc)
                last_error = exc
                continue
            return TransportHandle(kind=option.kind, context=context)
        detail = describe_exception(last_error) if last_error else "no HTTP transports configured"
        msg = f"Could not construct HTTP transport for {url}: {detail}"
        raise ConfigError(msg)

    @staticmethod
    def _validate_url(url: str) -> str:
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            msg = f"Invalid server url {url!r}: {exc}"
            raise ConfigError(msg) from exc
        if parsed.scheme not in {"http", "https"} or not parsed.host:
            msg = f"Invalid server url {url!r}: expected an http(s) address"
            raise ConfigError(msg)
        return url
