"""Projects enabled registry servers into each client instance's config file."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List

from mcphub.adapters.sqlite_store import RecordNotFoundError, SqliteStore
from mcphub.domain.clients.paths import PathUnresolvedError
from mcphub.domain.clients.value_objects import ClientInstance, ConfigBackup
from mcphub.domain.mcp.codec import MERGE_WRITE_CLIENTS, ServerEntry, write_full, write_preserving
from mcphub.domain.mcp.value_objects import Server, sanitize_name
from mcphub.domain.timestamps import utcnow
from mcphub.utils.logging import get_logger

from .backup import create_backup, remove_backup_files

logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncResult:
    instance_id: str
    config_path: Path
    backup_path: Path | None = None
    server_keys: List[str] = field(default_factory=list)
    merged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instanceId": self.instance_id,
            "configPath": str(self.config_path),
            "backupPath": str(self.backup_path) if self.backup_path else None,
            "servers": list(self.server_keys),
            "mode": "merge" if self.merged else "replace",
        }


def build_entries(servers: List[Server], enabled_ids: List[str]) -> Dict[str, ServerEntry]:
    """Map sanitized names to entries for enabled servers; the first server keeps a contested name."""

    enabled = set(enabled_ids)
    entries: Dict[str, ServerEntry] = {}
    for server in servers:
        if server.id not in enabled:
            continue
        key = sanitize_name(server.name)
        if key in entries:
            logger.warning("sync.name_collision", key=key, server_id=server.id, server_name=server.name)
            continue
        entries[key] = ServerEntry.from_server(server)
    return entries


class ConfigProjector:
    """Writes registry state into client config files, backing them up first."""

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    def sync_instance(
        self,
        instance_id: str,
        backup_dir: Path | None = None,
        *,
        retention_days: int | None = None,
    ) -> SyncResult:
        with self._store.lock:
            instance = self._store.get_instance(instance_id)
            if instance is None:
                raise RecordNotFoundError(f"Instance '{instance_id}' not found")
            servers = self._store.list_servers()

        config_path = _target_path(instance)
        entries = build_entries(servers, instance.enabled_servers)

        backup_path: Path | None = None
        if backup_dir is not None and config_path.is_file():
            backup_path = create_backup(config_path, backup_dir)
            self._store.create_backup(ConfigBackup.new(instance.id, str(backup_path)))

        merged = instance.client_kind in MERGE_WRITE_CLIENTS
        if merged:
            write_preserving(config_path, entries)
        else:
            write_full(config_path, entries)

        self._store.mark_synced(instance.id, utcnow())
        if retention_days:
            self._expire_backups(instance.id, retention_days)

        logger.info(
            "sync.instance",
            instance_id=instance.id,
            config_path=str(config_path),
            servers=len(entries),
            mode="merge" if merged else "replace",
        )
        return SyncResult(
            instance_id=instance.id,
            config_path=config_path,
            backup_path=backup_path,
            server_keys=list(entries),
            merged=merged,
        )

    def sync_all(self, backup_dir: Path | None = None, *, retention_days: int | None = None) -> List[str]:
        """Sync every instance; failures are logged and skipped. Returns the ids that succeeded."""

        synced: List[str] = []
        for instance in self._store.list_instances():
            try:
                self.sync_instance(instance.id, backup_dir, retention_days=retention_days)
            except Exception as exc:  # noqa: BLE001
                logger.error("sync.instance_failed", instance_id=instance.id, error=str(exc))
                continue
            synced.append(instance.id)
        return synced

    def _expire_backups(self, instance_id: str, retention_days: int) -> None:
        cutoff = utcnow() - timedelta(days=retention_days)
        expired = self._store.backups_older_than(instance_id, cutoff)
        if not expired:
            return
        gone = set(remove_backup_files(item.backup_path for item in expired))
        removed = self._store.delete_backups(item.id for item in expired if item.backup_path in gone)
        logger.info("backup.expired", instance_id=instance_id, count=removed, kept=len(expired) - removed)


def _target_path(instance: ClientInstance) -> Path:
    if not instance.config_path.strip():
        raise PathUnresolvedError(f"Instance '{instance.name}' has no config path")
    return Path(instance.config_path).expanduser()


__all__ = ["ConfigProjector", "SyncResult", "build_entries"]
