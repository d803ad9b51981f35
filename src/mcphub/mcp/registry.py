"""Name to server record mapping shared by the supervisor and its readers."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from mcphub.mcp.connection import ServerConnection
from mcphub.models.server import (
    Connected,
    ServerConfig,
    ServerInfo,
    ServerStatus,
    initial_status,
)

logger = logging.getLogger(__name__)

type DisplacedHandler = Callable[[str, ServerConnection], None]


@dataclass(frozen=True, slots=True)
class ServerRecord:
    """Immutable snapshot of one server; writers swap whole records."""

    name: str
    config: ServerConfig
    status: ServerStatus
    connection: ServerConnection | None = None
    attempt: int = 0

    def __post_init__(self) -> None:
        connected = isinstance(self.status, Connected)
        if connected != (self.connection is not None):
            msg = f"Server {self.name}: connection must be present exactly when connected"
            raise ValueError(msg)

    def with_status(
        self,
        status: ServerStatus,
        *,
        connection: ServerConnection | None = None,
        attempt: int | None = None,
    ) -> ServerRecord:
        return replace(
            self,
            status=status,
            connection=connection,
            attempt=self.attempt if attempt is None else attempt,
        )

    def info(self) -> ServerInfo:
        return ServerInfo(
            name=self.name,
            config=self.config,
            status=self.status,
            transport_kind=self.config.transport_kind,
        )


class ServerRegistry:
    """Insertion-ordered server records.

    Records are never mutated in place, so readers always see a consistent
    (status, connection) pair even while connects are in flight.
    """

    def __init__(self, *, on_displaced: DisplacedHandler | None = None) -> None:
        self._records: dict[str, ServerRecord] = {}
        self._on_displaced = on_displaced
        self._attempts = itertools.count(1)

    def set_displaced_handler(self, handler: DisplacedHandler | None) -> None:
        self._on_displaced = handler

    def add_server(self, name: str, config: ServerConfig) -> ServerInfo:
        """Register or overwrite a server without connecting to it."""
        previous = self._records.get(name)
        record = ServerRecord(
            name=name,
            config=config,
            status=initial_status(config),
            attempt=self.next_attempt(),
        )
        self._records[name] = record
        if previous is not None and previous.connection is not None:
            logger.info("Server %s re-registered while connected; releasing old connection", name)
            if self._on_displaced is not None:
                self._on_displaced(name, previous.connection)
        logger.info("Registered server %s (%s)", name, config.transport_kind)
        return record.info()

    def next_attempt(self) -> int:
        """Attempt numbers are unique for the registry lifetime, across clears."""
        return next(self._attempts)

    def get_server(self, name: str) -> ServerInfo | None:
        record = self._records.get(name)
        return record.info() if record is not None else None

    def get_servers(self) -> list[ServerInfo]:
        return [record.info() for record in list(self._records.values())]

    def record(self, name: str) -> ServerRecord | None:
        return self._records.get(name)

    def records(self) -> list[ServerRecord]:
        return list(self._records.values())

    def replace(self, record: ServerRecord) -> None:
        """Swap in a new record for an already registered name."""
        if record.name not in self._records:
            msg = f"Server not registered: {record.name}"
            raise KeyError(msg)
        self._records[record.name] = record

    def names(self) -> list[str]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

