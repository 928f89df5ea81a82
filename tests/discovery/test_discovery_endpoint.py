from __future__ import annotations

import socket

import pytest

from _web_utils import fetch_index, free_port, request
from mcphub.app.discovery.web import (
    PortInUseError,
    discovery_index,
    is_port_available,
    server_card,
    start_discovery_server,
)
from mcphub.domain.mcp.value_objects import Server


@pytest.fixture()
def server_a() -> Server:
    return Server.new("My Server", "npx", ["-y", "pkg"], env={"API_KEY": "secret"}, tags=["fs"])


def test_card_never_publishes_env(server_a: Server) -> None:
    card = server_card(server_a)
    assert card["transport"] == {"type": "stdio", "command": "npx", "args": ["-y", "pkg"], "env": {}}
    assert card["tags"] == ["fs"]
    assert "description" not in card

    index = discovery_index([server_a])
    assert index["schemaVersion"] == "1.0"
    assert index["provider"] == "MCP Hub"
    assert len(index["servers"]) == 1


def test_index_follows_snapshot(server_a: Server) -> None:
    handle = start_discovery_server(0, [server_a])
    try:
        index = fetch_index(handle.port)
        assert [card["name"] for card in index["servers"]] == ["My Server"]
        assert index["servers"][0]["transport"]["env"] == {}
        assert "secret" not in str(index)

        handle.update_servers([])
        assert fetch_index(handle.port)["servers"] == []
    finally:
        handle.shutdown()


def test_routes_and_cors_headers(server_a: Server) -> None:
    handle = start_discovery_server(0, [server_a])
    try:
        status, headers, body = request(handle.port, "GET", "/health")
        assert (status, body) == (200, b"OK")
        assert headers["access-control-allow-origin"] == "*"
        assert headers["access-control-allow-methods"] == "GET, OPTIONS"

        status, headers, body = request(handle.port, "GET", "/")
        assert status == 200
        assert headers["content-type"].startswith("text/html")
        assert headers["access-control-allow-origin"] == "*"
        assert b"MCP Hub Discovery Server" in body

        status, headers, _ = request(handle.port, "OPTIONS", "/.well-known/mcp.json")
        assert status == 204
        assert headers["access-control-allow-headers"] == "Content-Type, Accept"

        status, _, _ = request(handle.port, "GET", "/nope")
        assert status == 404

        status, headers, _ = request(handle.port, "GET", "/.well-known/mcp.json?fresh=1")
        assert status == 200
        assert headers["content-type"] == "application/json"
        assert headers["access-control-allow-origin"] == "*"
        assert headers["access-control-allow-methods"] == "GET, OPTIONS"
        assert headers["access-control-allow-headers"] == "Content-Type, Accept"
    finally:
        handle.shutdown()


def test_shutdown_is_idempotent_and_frees_port(server_a: Server) -> None:
    handle = start_discovery_server(0, [server_a])
    port = handle.port
    assert handle.running
    assert handle.url == f"http://127.0.0.1:{port}"
    handle.shutdown()
    handle.shutdown()
    assert not handle.running
    assert is_port_available(port)


def test_occupied_port_raises_in_use() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = int(blocker.getsockname()[1])
        assert not is_port_available(port)
        with pytest.raises(PortInUseError) as info:
            start_discovery_server(port, [])
        assert info.value.port == port


def test_free_port_is_available() -> None:
    assert is_port_available(free_port())


def test_endpoint_refuses_non_loopback_addresses(server_a: Server) -> None:
    try:
        address = socket.gethostbyname(socket.gethostname())
    except OSError:
        pytest.skip("host name does not resolve")
    if address.startswith("127."):
        pytest.skip("host name resolves to loopback only")

    handle = start_discovery_server(0, [server_a])
    try:
        with pytest.raises(ConnectionRefusedError):
            socket.create_connection((address, handle.port), timeout=2).close()
        assert fetch_index(handle.port)["servers"]
    finally:
        handle.shutdown()
