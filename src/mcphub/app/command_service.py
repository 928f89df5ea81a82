"""Command surface over the registry, projection and discovery services."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from mcphub.adapters.sqlite_store import SqliteStore, StoreError
from mcphub.app.discovery.lifecycle import DiscoveryController, DiscoveryStatus
from mcphub.app.discovery.mirror import DiscoveryMirror, MirrorError
from mcphub.app.discovery.web import BindError, is_port_available
from mcphub.app.health import check_server_health
from mcphub.app.sync.backup import BackupError
from mcphub.app.sync.projector import ConfigProjector, SyncResult
from mcphub.domain.clients.paths import (
    BaseDirectories,
    HostOS,
    PathUnresolvedError,
    current_os,
    detect_installed,
    require_config_path,
    resolve_config_path,
)
from mcphub.domain.clients.value_objects import ClientInstance, ClientKind, ConfigBackup, DetectedClient
from mcphub.domain.mcp.codec import CodecError, ServerEntry, import_from, read_config
from mcphub.domain.mcp.value_objects import Server, ServerHealth
from mcphub.domain.preferences import AppSettings, DiscoverySettings
from mcphub.ports.credentials import CredentialStore, CredentialStoreError
from mcphub.settings import RuntimeSettings
from mcphub.utils.logging import get_logger

logger = get_logger(__name__)

_SERVICE_ERRORS = (
    StoreError,
    CodecError,
    BackupError,
    BindError,
    MirrorError,
    PathUnresolvedError,
    CredentialStoreError,
    ValueError,
)

_EDITABLE_SERVER_FIELDS = {"name", "command", "args", "env", "tags", "description"}


class CommandError(RuntimeError):
    """User-facing failure of a command; the message is meant to be shown as is."""


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except CommandError:
        raise
    except _SERVICE_ERRORS as exc:
        raise CommandError(str(exc)) from exc


class CommandService:
    """Every public method returns a value or raises :class:`CommandError`."""

    def __init__(
        self,
        store: SqliteStore,
        settings: RuntimeSettings,
        controller: DiscoveryController,
        credentials: CredentialStore | None = None,
        *,
        host: HostOS | None = None,
        directories: BaseDirectories | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._controller = controller
        self._credentials = credentials
        self._projector = ConfigProjector(store)
        self._host = host or current_os()
        self._directories = directories or BaseDirectories.for_host(self._host)

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        credentials: CredentialStore | None = None,
    ) -> "CommandService":
        with _translate_errors():
            store = SqliteStore(settings.database_path)
        controller = DiscoveryController(store, DiscoveryMirror(settings.mcp_dir))
        return cls(store, settings, controller, credentials)

    @property
    def controller(self) -> DiscoveryController:
        return self._controller

    def close(self) -> None:
        self._controller.shutdown()
        self._store.close()

    # ---- Servers ----

    def list_servers(self) -> List[Server]:
        with _translate_errors():
            return self._store.list_servers()

    def get_server(self, server_id: str) -> Server:
        with _translate_errors():
            server = self._store.get_server(server_id)
        if server is None:
            raise CommandError(f"Server not found: {server_id}")
        return server

    def create_server(
        self,
        name: str,
        command: str,
        args: List[str] | None = None,
        *,
        env: Dict[str, str] | None = None,
        tags: List[str] | None = None,
        description: str | None = None,
    ) -> Server:
        if not name.strip():
            raise CommandError("Server name must not be empty")
        if not command.strip():
            raise CommandError("Server command must not be empty")
        server = Server.new(name, command, args, env=env, tags=tags, description=description)
        with _translate_errors():
            self._store.create_server(server)
        self._refresh_discovery_after_change()
        return server

    def update_server(self, server_id: str, **changes: Any) -> Server:
        """Apply only the fields passed; an empty or ``None`` description clears it."""

        unknown = set(changes) - _EDITABLE_SERVER_FIELDS
        if unknown:
            raise CommandError(f"Unknown server fields: {', '.join(sorted(unknown))}")
        for required in ("name", "command"):
            if required in changes and not str(changes[required] or "").strip():
                raise CommandError(f"Server {required} must not be empty")
        if "description" in changes:
            changes["description"] = changes["description"] or None
        for key, empty in (("args", list), ("env", dict), ("tags", list)):
            if key in changes and changes[key] is None:
                changes[key] = empty()
        current = self.get_server(server_id)
        server = current.updated(**changes)
        with _translate_errors():
            self._store.update_server(server)
        self._refresh_discovery_after_change()
        return server

    def delete_server(self, server_id: str) -> None:
        with _translate_errors():
            self._store.delete_server(server_id)
        self._refresh_discovery_after_change()

    # ---- Instances ----

    def list_instances(self) -> List[ClientInstance]:
        with _translate_errors():
            return self._store.list_instances()

    def get_instance(self, instance_id: str) -> ClientInstance:
        with _translate_errors():
            instance = self._store.get_instance(instance_id)
        if instance is None:
            raise CommandError(f"Instance not found: {instance_id}")
        return instance

    def create_instance(
        self,
        name: str,
        client_kind: ClientKind | str,
        config_path: str | None = None,
        *,
        is_default: bool = False,
    ) -> ClientInstance:
        kind = _parse_kind(client_kind)
        with _translate_errors():
            path = _absolute_path(config_path or require_config_path(kind, self._host, self._directories))
            return self._store.create_instance(ClientInstance.new(name, kind, path, is_default=is_default))

    def update_instance(
        self,
        instance_id: str,
        *,
        name: str | None = None,
        config_path: str | None = None,
        is_default: bool | None = None,
    ) -> ClientInstance:
        current = self.get_instance(instance_id)
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if config_path is not None:
            changes["config_path"] = _absolute_path(config_path)
        if is_default is not None:
            changes["is_default"] = is_default
        with _translate_errors():
            return self._store.update_instance(current.updated(**changes))

    def delete_instance(self, instance_id: str) -> None:
        with _translate_errors():
            self._store.delete_instance(instance_id)

    def set_server_enabled(self, instance_id: str, server_id: str, enabled: bool) -> None:
        with _translate_errors():
            self._store.set_enablement(instance_id, server_id, enabled)

    def get_enabled_servers(self, instance_id: str) -> List[str]:
        self.get_instance(instance_id)
        with _translate_errors():
            return self._store.enabled_servers_for(instance_id)

    # ---- Projection ----

    def sync_instance(self, instance_id: str) -> SyncResult:
        with _translate_errors():
            backup_dir, retention = self._backup_policy()
            return self._projector.sync_instance(instance_id, backup_dir, retention_days=retention)

    def sync_all_instances(self) -> List[str]:
        with _translate_errors():
            backup_dir, retention = self._backup_policy()
            return self._projector.sync_all(backup_dir, retention_days=retention)

    def import_from_file(self, path: str | Path) -> List[Server]:
        """Register every server found in a client config file under fresh ids."""

        with _translate_errors():
            servers = import_from(Path(_absolute_path(path)))
            with self._store.lock:
                for server in servers:
                    self._store.create_server(server)
        logger.info("import.completed", path=str(path), servers=len(servers))
        if servers:
            self._refresh_discovery_after_change()
        return servers

    def detect_clients(self) -> List[DetectedClient]:
        return [
            DetectedClient(kind, str(path), path.is_file())
            for kind, path in detect_installed(self._host, self._directories)
        ]

    def get_backups(self, instance_id: str) -> List[ConfigBackup]:
        with _translate_errors():
            return self._store.backups_for(instance_id)

    def restore_backup(self, backup_id: str) -> None:
        raise CommandError("Restore not yet implemented")

    def get_default_config_path(self, client_kind: ClientKind | str) -> str | None:
        path = resolve_config_path(_parse_kind(client_kind), self._host, self._directories)
        return str(path) if path is not None else None

    def read_config_file(self, path: str | Path) -> Dict[str, ServerEntry]:
        with _translate_errors():
            return read_config(Path(path).expanduser())

    def check_server_health(self, server_id: str) -> ServerHealth:
        return check_server_health(self.get_server(server_id))

    # ---- Settings ----

    def get_settings(self) -> AppSettings:
        with _translate_errors():
            return self._store.get_app_settings()

    def save_settings(self, settings: AppSettings) -> AppSettings:
        with _translate_errors():
            with self._store.lock:
                previous = self._store.get_app_settings()
                self._store.set_app_settings(settings)
            if previous.discovery != settings.discovery:
                self._controller.apply_settings_change(previous.discovery, settings.discovery)
        return settings

    def get_discovery_settings(self) -> DiscoverySettings:
        return self.get_settings().discovery

    def update_discovery_settings(self, discovery: DiscoverySettings) -> DiscoveryStatus:
        with _translate_errors():
            return self._controller.update_settings(discovery)

    def refresh_discovery(self) -> DiscoveryStatus:
        with _translate_errors():
            return self._controller.refresh()

    def discovery_status(self) -> DiscoveryStatus:
        with _translate_errors():
            return self._controller.status()

    def check_port_available(self, port: int) -> bool:
        if not 0 < port <= 65535:
            raise CommandError(f"Port out of range: {port}")
        return is_port_available(port)

    # ---- Credentials ----

    def is_credential_storage_available(self) -> bool:
        return self._credentials is not None and self._credentials.available()

    def store_credential(self, key: str, value: str) -> None:
        with _translate_errors():
            self._require_credentials().store(key, value)

    def get_credential(self, key: str) -> str | None:
        with _translate_errors():
            return self._require_credentials().get(key)

    def delete_credential(self, key: str) -> None:
        with _translate_errors():
            self._require_credentials().delete(key)

    # ---- Internals ----

    def _require_credentials(self) -> CredentialStore:
        credentials = self._credentials
        if credentials is None or not credentials.available():
            raise CommandError("Credential storage is not available")
        return credentials

    def _backup_policy(self) -> tuple[Path | None, int | None]:
        app_settings = self._store.get_app_settings()
        if not app_settings.create_backups:
            return None, None
        return self._settings.backup_dir, app_settings.backup_retention_days

    def _refresh_discovery_after_change(self) -> None:
        try:
            self._controller.refresh(start_endpoint=False)
        except (StoreError, MirrorError) as exc:
            logger.warning("discovery.refresh_failed", error=str(exc))


def _absolute_path(path: str | Path) -> str:
    if not str(path).strip():
        raise CommandError("Config path must not be empty")
    return os.path.abspath(Path(path).expanduser())


def _parse_kind(value: ClientKind | str) -> ClientKind:
    if isinstance(value, ClientKind):
        return value
    try:
        return ClientKind(value)
    except ValueError as exc:
        raise CommandError(f"Unknown client type: {value}") from exc


__all__ = ["CommandError", "CommandService"]
