"""Keeps the discovery mirror and HTTP endpoint in line with the stored settings."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List

from mcphub.adapters.sqlite_store import SqliteStore
from mcphub.domain.mcp.value_objects import Server
from mcphub.domain.preferences import DiscoverySettings
from mcphub.utils.locks import ReadWriteLock
from mcphub.utils.logging import get_logger

from .mirror import DiscoveryMirror
from .web import BindError, DiscoveryServerHandle, start_discovery_server

logger = get_logger(__name__)

ServerFactory = Callable[[int, Iterable[Server]], DiscoveryServerHandle]


@dataclass(frozen=True)
class DiscoveryStatus:
    mcp_directory_enabled: bool
    mcp_directory: Path
    http_server_enabled: bool
    http_server_running: bool
    http_server_port: int
    url: str | None = None
    last_error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "mcpDirectoryEnabled": self.mcp_directory_enabled,
            "mcpDirectory": str(self.mcp_directory),
            "httpServerEnabled": self.http_server_enabled,
            "httpServerRunning": self.http_server_running,
            "httpServerPort": self.http_server_port,
        }
        if self.url:
            payload["url"] = self.url
        if self.last_error:
            payload["lastError"] = self.last_error
        return payload


class DiscoveryController:
    """Single supervisor over the mirror and the endpoint handle slot."""

    def __init__(
        self,
        store: SqliteStore,
        mirror: DiscoveryMirror,
        server_factory: ServerFactory | None = None,
    ) -> None:
        self._store = store
        self._mirror = mirror
        self._server_factory = server_factory or start_discovery_server
        self._slot_lock = ReadWriteLock()
        self._handle: DiscoveryServerHandle | None = None
        self._requested_port: int | None = None
        self._last_error: str | None = None
        self._reconcile_lock = threading.Lock()

    @property
    def mirror(self) -> DiscoveryMirror:
        return self._mirror

    def current_settings(self) -> DiscoverySettings:
        return self._store.get_app_settings().discovery

    def startup(self) -> DiscoveryStatus:
        """Bring up whatever the stored settings enable; a failed bind is logged, not raised."""

        settings = self.current_settings()
        return self.apply_settings_change(DiscoverySettings(), settings)

    def update_settings(self, new: DiscoverySettings) -> DiscoveryStatus:
        """Persist ``new`` first, then reconcile against the previously stored block."""

        with self._store.lock:
            app_settings = self._store.get_app_settings()
            self._store.set_app_settings(app_settings.with_discovery(new))
        return self.apply_settings_change(app_settings.discovery, new)

    def apply_settings_change(self, old: DiscoverySettings, new: DiscoverySettings) -> DiscoveryStatus:
        """Reconcile both surfaces; a mirror failure is re-raised after the endpoint is settled."""

        with self._reconcile_lock:
            servers = self._store.list_servers()
            try:
                if new.mcp_directory_enabled:
                    self._mirror.write_all(servers)
                elif old.mcp_directory_enabled:
                    self._mirror.clear()
            finally:
                if new.http_server_enabled:
                    self._ensure_endpoint(new.http_server_port, servers)
                else:
                    self._stop_endpoint()
        return self.status(new)

    def refresh(self, *, start_endpoint: bool = True) -> DiscoveryStatus:
        """Push the current server list to every enabled discovery surface.

        With ``start_endpoint=False`` a stopped endpoint stays stopped; only a
        running one receives the new list.
        """

        settings = self.current_settings()
        with self._reconcile_lock:
            servers = self._store.list_servers()
            try:
                if settings.mcp_directory_enabled:
                    self._mirror.write_all(servers)
            finally:
                if settings.http_server_enabled:
                    handle = self._current_handle()
                    if handle is not None and handle.running:
                        handle.update_servers(servers)
                    elif start_endpoint:
                        self._ensure_endpoint(settings.http_server_port, servers)
        return self.status(settings)

    def status(self, settings: DiscoverySettings | None = None) -> DiscoveryStatus:
        settings = settings or self.current_settings()
        handle = self._current_handle()
        running = handle is not None and handle.running
        return DiscoveryStatus(
            mcp_directory_enabled=settings.mcp_directory_enabled,
            mcp_directory=self._mirror.directory,
            http_server_enabled=settings.http_server_enabled,
            http_server_running=running,
            http_server_port=handle.port if running else settings.http_server_port,
            url=handle.url if running else None,
            last_error=self._last_error,
        )

    def shutdown(self) -> None:
        with self._reconcile_lock:
            self._stop_endpoint()

    # ---- Internals ----

    def _current_handle(self) -> DiscoveryServerHandle | None:
        with self._slot_lock.read():
            return self._handle

    def _ensure_endpoint(self, port: int, servers: List[Server]) -> None:
        handle = self._current_handle()
        if handle is not None and handle.running:
            if self._requested_port == port:
                handle.update_servers(servers)
                return
            logger.info("discovery.port_changed", old=self._requested_port, new=port)
            self._stop_endpoint()
        try:
            fresh = self._server_factory(port, servers)
        except BindError as exc:
            self._last_error = str(exc)
            logger.error("discovery.bind_failed", port=port, error=str(exc))
            return
        with self._slot_lock.write():
            self._handle = fresh
            self._requested_port = port
        self._last_error = None

    def _stop_endpoint(self) -> None:
        with self._slot_lock.write():
            handle, self._handle = self._handle, None
            self._requested_port = None
        if handle is not None:
            handle.shutdown()


__all__ = ["DiscoveryController", "DiscoveryStatus"]
