from __future__ import annotations

import socket
from pathlib import Path

import pytest

from _web_utils import fetch_index, free_port
from mcphub.adapters.sqlite_store import SqliteStore
from mcphub.app.discovery import DiscoveryController, DiscoveryMirror, MirrorError
from mcphub.app.discovery.web import is_port_available, start_discovery_server
from mcphub.domain.mcp.value_objects import Server
from mcphub.domain.preferences import DiscoverySettings


@pytest.fixture()
def controller(store: SqliteStore, tmp_path: Path):
    ctrl = DiscoveryController(store, DiscoveryMirror(tmp_path / ".mcp"))
    try:
        yield ctrl
    finally:
        ctrl.shutdown()


def test_port_change_moves_endpoint(store: SqliteStore, controller: DiscoveryController) -> None:
    store.create_server(Server.new("My Server", "npx"))
    first, second = free_port(), free_port()
    while second == first:
        second = free_port()

    status = controller.update_settings(DiscoverySettings(http_server_enabled=True, http_server_port=first))
    assert status.http_server_running
    assert status.http_server_port == first
    assert not is_port_available(first)

    status = controller.update_settings(DiscoverySettings(http_server_enabled=True, http_server_port=second))
    assert status.http_server_port == second
    assert is_port_available(first)
    assert not is_port_available(second)
    assert store.get_app_settings().discovery.http_server_port == second


def test_disable_stops_endpoint(controller: DiscoveryController) -> None:
    port = free_port()
    controller.update_settings(DiscoverySettings(http_server_enabled=True, http_server_port=port))
    status = controller.update_settings(DiscoverySettings(http_server_enabled=False, http_server_port=port))
    assert not status.http_server_running
    assert status.url is None
    assert is_port_available(port)


def test_bind_failure_is_reported_and_retried(controller: DiscoveryController) -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    port = int(blocker.getsockname()[1])
    try:
        status = controller.update_settings(DiscoverySettings(http_server_enabled=True, http_server_port=port))
        assert not status.http_server_running
        assert status.last_error and str(port) in status.last_error
        assert controller.current_settings().http_server_enabled
    finally:
        blocker.close()

    status = controller.refresh()
    assert status.http_server_running
    assert status.last_error is None


def test_refresh_pushes_new_servers(store: SqliteStore, controller: DiscoveryController) -> None:
    status = controller.update_settings(DiscoverySettings(http_server_enabled=True, http_server_port=free_port()))
    assert fetch_index(status.http_server_port)["servers"] == []

    store.create_server(Server.new("Late", "cmd"))
    controller.refresh()
    assert [card["name"] for card in fetch_index(status.http_server_port)["servers"]] == ["Late"]


def test_mirror_follows_settings(store: SqliteStore, controller: DiscoveryController) -> None:
    server = store.create_server(Server.new("My Server", "npx"))
    directory = controller.mirror.directory

    controller.update_settings(DiscoverySettings(mcp_directory_enabled=True))
    assert [path.name for path in controller.mirror.owned_files()] == ["mcp-hub-my-server.md"]
    foreign = directory / "foreign.md"
    foreign.write_text("keep", encoding="utf-8")

    store.delete_server(server.id)
    controller.refresh()
    assert controller.mirror.owned_files() == []
    assert foreign.exists()

    store.create_server(Server.new("Again", "npx"))
    controller.refresh()
    controller.update_settings(DiscoverySettings(mcp_directory_enabled=False))
    assert controller.mirror.owned_files() == []
    assert foreign.exists()


def test_startup_applies_stored_settings(store: SqliteStore, tmp_path: Path) -> None:
    store.create_server(Server.new("Boot", "cmd"))
    port = free_port()
    settings = store.get_app_settings().with_discovery(
        DiscoverySettings(mcp_directory_enabled=True, http_server_enabled=True, http_server_port=port)
    )
    store.set_app_settings(settings)

    ctrl = DiscoveryController(store, DiscoveryMirror(tmp_path / "boot-mcp"))
    try:
        status = ctrl.startup()
        assert status.http_server_running
        assert status.to_dict()["url"] == f"http://127.0.0.1:{port}"
        assert (tmp_path / "boot-mcp" / "mcp-hub-boot.md").exists()
    finally:
        ctrl.shutdown()
    assert not ctrl.status().http_server_running


def test_passive_refresh_never_binds(store: SqliteStore, tmp_path: Path) -> None:
    attempts: list[int] = []

    def factory(port, servers):
        attempts.append(port)
        return start_discovery_server(port, servers)

    store.set_app_settings(
        store.get_app_settings().with_discovery(DiscoverySettings(http_server_enabled=True, http_server_port=free_port()))
    )
    ctrl = DiscoveryController(store, DiscoveryMirror(tmp_path / ".mcp"), server_factory=factory)
    try:
        status = ctrl.refresh(start_endpoint=False)
        assert attempts == []
        assert not status.http_server_running
        assert status.last_error is None

        ctrl.refresh()
        assert len(attempts) == 1
        store.create_server(Server.new("Later", "cmd"))
        ctrl.refresh(start_endpoint=False)
        assert len(attempts) == 1
        assert [card["name"] for card in fetch_index(ctrl.status().http_server_port)["servers"]] == ["Later"]
    finally:
        ctrl.shutdown()


def test_mirror_failure_still_settles_endpoint(store: SqliteStore, tmp_path: Path) -> None:
    blocked = tmp_path / "not-a-directory"
    blocked.write_text("", encoding="utf-8")
    ctrl = DiscoveryController(store, DiscoveryMirror(blocked / ".mcp"))
    port = free_port()
    try:
        ctrl.update_settings(DiscoverySettings(http_server_enabled=True, http_server_port=port))
        assert ctrl.status().http_server_running

        with pytest.raises(MirrorError):
            ctrl.update_settings(DiscoverySettings(mcp_directory_enabled=True, http_server_enabled=False))

        assert not ctrl.status().http_server_running
        assert is_port_available(port)
    finally:
        ctrl.shutdown()
