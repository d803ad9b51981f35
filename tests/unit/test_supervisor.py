from __future__ import annotations

import asyncio
import logging
import time

import pytest

from mcphub.mcp.router import ToolRouter
from mcphub.models.server import Connected, Connecting, Disabled, Failed, ServerConfig
from tests.support.mcp_fakes import FakeBackend, FakeServer, make_tool


def test_add_server_is_connecting_until_connect_runs() -> None:
    backend = FakeBackend()
    supervisor = backend.supervisor()

    info = supervisor.add_server("alpha", ServerConfig(command="alpha"))

    assert isinstance(info.status, Connecting)
    stored = supervisor.get_server("alpha")
    assert stored is not None
    assert isinstance(stored.status, Connecting)
    assert stored.transport_kind == "stdio"
    assert backend.constructed == []


@pytest.mark.asyncio
async def test_disconnect_before_any_connect_keeps_registration_status() -> None:
    backend = FakeBackend()
    supervisor = backend.supervisor()
    supervisor.add_server("alpha", ServerConfig(command="alpha"))

    await supervisor.disconnect("alpha")

    info = supervisor.get_server("alpha")
    assert info is not None
    assert isinstance(info.status, Connecting)
    assert backend.constructed == []


@pytest.mark.asyncio
async def test_connect_disabled_server_builds_no_transport() -> None:
    backend = FakeBackend()
    backend.add("quiet")
    supervisor = backend.supervisor()
    supervisor.add_server("quiet", ServerConfig(command="quiet", enabled=False))

    status = await supervisor.connect("quiet")

    assert status == Disabled()
    assert backend.constructed == []
    info = supervisor.get_server("quiet")
    assert info is not None
    assert isinstance(info.status, Disabled)


@pytest.mark.asyncio
async def test_connect_http_server_discovers_tools_in_order() -> None:
    backend = FakeBackend()
    backend.add(
        "http://tools.local/mcp",
        FakeServer(tools=[make_tool("search", "Search docs"), make_tool("fetch")]),
    )
    supervisor = backend.supervisor()
    supervisor.add_server("serverB", ServerConfig(url="http://tools.local/mcp"))

    status = await supervisor.connect("serverB")

    assert isinstance(status, Connected)
    assert [tool.name for tool in status.tools] == ["search", "fetch"]
    assert status.tools[0].description == "Search docs"
    assert status.tools[0].input_schema == {"type": "object", "properties": {}}
    router = ToolRouter(supervisor.registry)
    assert [(item.server_name, item.tool.name) for item in router.get_all_tools()] == [
        ("serverB", "search"),
        ("serverB", "fetch"),
    ]
    info = supervisor.get_server("serverB")
    assert info is not None
    assert info.transport_kind == "http"
    await supervisor.cleanup()


@pytest.mark.asyncio
async def test_connect_unknown_server_returns_failed_status() -> None:
    supervisor = FakeBackend().supervisor()

    status = await supervisor.connect("ghost")

    assert isinstance(status, Failed)
    assert status.category == "unknown_server"
    assert "ghost" in status.error


@pytest.mark.asyncio
async def test_connect_without_command_or_url_is_config_error() -> None:
    backend = FakeBackend()
    supervisor = backend.supervisor()
    supervisor.add_server("empty", ServerConfig())

    status = await supervisor.connect("empty")

    assert isinstance(status, Failed)
    assert status.category == "config_error"
    assert "'url' or 'command'" in status.error
    assert backend.constructed == []


@pytest.mark.asyncio
async def test_handshake_timeout_fails_within_server_timeout() -> None:
    backend = FakeBackend()
    server = backend.add("slow", FakeServer(initialize_delay=10.0))
    supervisor = backend.supervisor()
    supervisor.add_server("slow", ServerConfig(command="slow", timeout=50))

    started = time.monotonic()
    status = await supervisor.connect("slow")
    elapsed = time.monotonic() - started

    assert isinstance(status, Failed)
    assert status.category == "connect_timeout"
    assert "timeout" in status.error.lower()
    assert elapsed < 1.0
    await supervisor.drain()
    assert server.open_count == 0


@pytest.mark.asyncio
async def test_transport_that_never_opens_times_out_and_is_released() -> None:
    backend = FakeBackend()
    server = backend.add("stuck", FakeServer(hang_on_enter=True))
    supervisor = backend.supervisor()
    supervisor.add_server("stuck", ServerConfig(command="stuck", timeout=50))

    status = await supervisor.connect("stuck")

    assert isinstance(status, Failed)
    assert status.error == "Connection timeout after 50ms"
    await supervisor.drain()
    assert server.entered == 0


@pytest.mark.asyncio
async def test_tool_discovery_timeout_fails() -> None:
    backend = FakeBackend()
    server = backend.add("lister", FakeServer(list_tools_delay=10.0))
    supervisor = backend.supervisor()
    supervisor.add_server("lister", ServerConfig(command="lister", timeout=50))

    status = await supervisor.connect("lister")

    assert isinstance(status, Failed)
    assert status.category == "connect_timeout"
    assert status.error == "List tools timeout after 50ms"
    await supervisor.drain()
    assert server.open_count == 0


@pytest.mark.asyncio
async def test_handshake_and_discovery_errors_are_categorised() -> None:
    backend = FakeBackend()
    backend.add("bad-init", FakeServer(initialize_error=RuntimeError("protocol mismatch")))
    backend.add("bad-list", FakeServer(list_tools_error=RuntimeError("tools exploded")))
    backend.add("bad-spawn", FakeServer(enter_error=FileNotFoundError("no such binary")))
    supervisor = backend.supervisor()
    for name in ("bad-init", "bad-list", "bad-spawn"):
        supervisor.add_server(name, ServerConfig(command=name))

    results = await supervisor.connect_all()

    init_status = results["bad-init"]
    assert isinstance(init_status, Failed)
    assert init_status.category == "handshake_error"
    assert init_status.error == "protocol mismatch"
    list_status = results["bad-list"]
    assert isinstance(list_status, Failed)
    assert list_status.category == "tool_discovery_error"
    assert list_status.error == "tools exploded"
    spawn_status = results["bad-spawn"]
    assert isinstance(spawn_status, Failed)
    assert spawn_status.category == "handshake_error"
    assert "no such binary" in spawn_status.error
    await supervisor.cleanup()


@pytest.mark.asyncio
async def test_connect_all_is_bounded_by_the_hanging_server_timeout() -> None:
    backend = FakeBackend()
    backend.add("fast-a", FakeServer(tools=[make_tool("a")]))
    backend.add("hang", FakeServer(initialize_delay=60.0))
    backend.add("fast-b", FakeServer(tools=[make_tool("b1"), make_tool("b2")]))
    backend.add("off")
    supervisor = backend.supervisor()
    supervisor.add_server("fast-a", ServerConfig(command="fast-a"))
    supervisor.add_server("hang", ServerConfig(command="hang", timeout=100))
    supervisor.add_server("fast-b", ServerConfig(command="fast-b"))
    supervisor.add_server("off", ServerConfig(command="off", enabled=False))

    started = time.monotonic()
    results = await supervisor.connect_all()
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert list(results) == ["fast-a", "hang", "fast-b", "off"]
    assert isinstance(results["fast-a"], Connected)
    assert isinstance(results["fast-b"], Connected)
    assert len(results["fast-b"].tools) == 2
    hang = results["hang"]
    assert isinstance(hang, Failed)
    assert "timeout" in hang.error.lower()
    assert results["off"] == Disabled()
    await supervisor.cleanup()


@pytest.mark.asyncio
async def test_disconnect_releases_handles_and_hides_tools() -> None:
    backend = FakeBackend()
    server = backend.add("alpha", FakeServer(tools=[make_tool("ping")]))
    supervisor = backend.supervisor()
    router = ToolRouter(supervisor.registry)
    supervisor.add_server("alpha", ServerConfig(command="alpha"))
    await supervisor.connect("alpha")
    assert len(router.get_all_tools()) == 1

    await supervisor.disconnect("alpha")

    assert router.get_all_tools() == []
    assert server.open_count == 0
    info = supervisor.get_server("alpha")
    assert info is not None
    assert isinstance(info.status, Failed)
    assert info.status.category == "disconnected"
    record = supervisor.registry.record("alpha")
    assert record is not None
    assert record.connection is None

    await supervisor.disconnect("alpha")
    await supervisor.disconnect("missing")
    assert server.exited == 1


@pytest.mark.asyncio
async def test_disconnect_logs_and_swallows_close_errors(caplog: pytest.LogCaptureFixture) -> None:
    backend = FakeBackend()
    backend.add("leaky", FakeServer(close_error=RuntimeError("pipe already closed")))
    supervisor = backend.supervisor()
    supervisor.add_server("leaky", ServerConfig(command="leaky"))
    await supervisor.connect("leaky")

    with caplog.at_level(logging.WARNING, logger="mcphub.mcp.supervisor"):
        await supervisor.disconnect("leaky")

    assert "pipe already closed" in caplog.text
    record = supervisor.registry.record("leaky")
    assert record is not None
    assert record.connection is None


@pytest.mark.asyncio
async def test_set_enabled_round_trip() -> None:
    backend = FakeBackend()
    server = backend.add("alpha", FakeServer(tools=[make_tool("ping")]))
    supervisor = backend.supervisor()
    router = ToolRouter(supervisor.registry)
    supervisor.add_server("alpha", ServerConfig(command="alpha"))
    await supervisor.connect("alpha")

    disabled = await supervisor.set_enabled("alpha", False)

    assert disabled == Disabled()
    assert server.open_count == 0
    result = await router.call_tool("alpha", "ping", {})
    assert result.is_error is True

    enabled = await supervisor.set_enabled("alpha", True)

    assert isinstance(enabled, Connected)
    assert server.entered == 2
    result = await router.call_tool("alpha", "ping", {})
    assert result.is_error is False
    await supervisor.cleanup()


@pytest.mark.asyncio
async def test_set_enabled_is_a_no_op_when_already_in_that_state() -> None:
    backend = FakeBackend()
    backend.add("alpha", FakeServer())
    supervisor = backend.supervisor()
    supervisor.add_server("alpha", ServerConfig(command="alpha", enabled=False))

    assert await supervisor.set_enabled("alpha", False) == Disabled()
    assert await supervisor.set_enabled("ghost", True) is None
    assert backend.constructed == []


@pytest.mark.asyncio
async def test_set_enabled_true_leaves_a_config_disabled_server_alone() -> None:
    backend = FakeBackend()
    backend.add("alpha", FakeServer(tools=[make_tool("ping")]))
    supervisor = backend.supervisor()
    original = ServerConfig(command="alpha", enabled=False)
    supervisor.add_server("alpha", original)

    status = await supervisor.set_enabled("alpha", True)

    assert status == Disabled()
    info = supervisor.get_server("alpha")
    assert info is not None
    assert info.config is original
    assert isinstance(info.status, Disabled)
    assert backend.constructed == []


@pytest.mark.asyncio
async def test_reconnect_releases_the_previous_connection() -> None:
    backend = FakeBackend()
    server = backend.add("alpha", FakeServer(tools=[make_tool("ping")]))
    supervisor = backend.supervisor()
    supervisor.add_server("alpha", ServerConfig(command="alpha"))

    await supervisor.connect("alpha")
    status = await supervisor.connect("alpha")
    await supervisor.drain()

    assert isinstance(status, Connected)
    assert server.entered == 2
    assert server.open_count == 1
    await supervisor.cleanup()
    assert server.open_count == 0


@pytest.mark.asyncio
async def test_retry_after_failure_can_connect() -> None:
    backend = FakeBackend()
    server = backend.add("flaky", FakeServer(initialize_error=RuntimeError("booting")))
    supervisor = backend.supervisor()
    supervisor.add_server("flaky", ServerConfig(command="flaky"))

    first = await supervisor.connect("flaky")
    server.initialize_error = None
    second = await supervisor.connect("flaky")

    assert isinstance(first, Failed)
    assert isinstance(second, Connected)
    await supervisor.cleanup()


@pytest.mark.asyncio
async def test_disconnect_during_connect_discards_the_late_result() -> None:
    backend = FakeBackend()
    server = backend.add("alpha", FakeServer(initialize_delay=0.2, tools=[make_tool("ping")]))
    supervisor = backend.supervisor()
    supervisor.add_server("alpha", ServerConfig(command="alpha"))

    pending = asyncio.create_task(supervisor.connect("alpha"))
    await asyncio.sleep(0.05)
    await supervisor.disconnect("alpha")
    status = await pending
    await supervisor.drain()

    assert isinstance(status, Failed)
    assert status.category == "disconnected"
    info = supervisor.get_server("alpha")
    assert info is not None
    assert isinstance(info.status, Failed)
    assert server.entered == 1
    assert server.open_count == 0


@pytest.mark.asyncio
async def test_cleanup_abandons_in_flight_connects() -> None:
    backend = FakeBackend()
    slow = backend.add("slow", FakeServer(initialize_delay=0.3))
    ready = backend.add("ready", FakeServer(tools=[make_tool("ping")]))
    supervisor = backend.supervisor()
    supervisor.add_server("ready", ServerConfig(command="ready"))
    supervisor.add_server("slow", ServerConfig(command="slow"))
    await supervisor.connect("ready")

    pending = asyncio.create_task(supervisor.connect("slow"))
    await asyncio.sleep(0.05)
    await supervisor.cleanup()

    assert supervisor.get_servers() == []
    assert ready.open_count == 0
    status = await pending
    await supervisor.drain()
    assert isinstance(status, Failed)
    assert slow.open_count == 0


@pytest.mark.asyncio
async def test_overwriting_a_connected_server_releases_its_connection() -> None:
    backend = FakeBackend()
    old = backend.add("old", FakeServer(tools=[make_tool("ping")]))
    backend.add("new", FakeServer())
    supervisor = backend.supervisor()
    supervisor.add_server("alpha", ServerConfig(command="old"))
    await supervisor.connect("alpha")

    info = supervisor.add_server("alpha", ServerConfig(command="new"))
    await supervisor.drain()

    assert isinstance(info.status, Connecting)
    assert old.open_count == 0
    record = supervisor.registry.record("alpha")
    assert record is not None
    assert record.connection is None
