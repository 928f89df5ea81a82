"""SQLite-backed store for servers, client instances, enablement and backups."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

import sqlalchemy as sa
from sqlalchemy import event, exc
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection

from mcphub.domain.clients.value_objects import ClientInstance, ClientKind, ConfigBackup
from mcphub.domain.mcp.value_objects import Server, ServerSource, SourceKind
from mcphub.domain.preferences import APP_SETTINGS_KEY, AppSettings
from mcphub.domain.timestamps import format_timestamp, parse_optional_timestamp, parse_timestamp, utcnow
from mcphub.utils.logging import get_logger

logger = get_logger(__name__)


class StoreError(RuntimeError):
    """Base error for persistent store failures."""


class RecordNotFoundError(StoreError):
    """Raised when an update or delete targets an unknown id."""


class StoreConflictError(StoreError):
    """Raised when a record with the same id already exists."""


class StoreCorruptError(StoreError):
    """Raised when stored data cannot be decoded or violates integrity."""


class StoreIOError(StoreError):
    """Raised when the database cannot be opened, read or written."""


metadata = sa.MetaData()

servers_table = sa.Table(
    "servers",
    metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("description", sa.Text),
    sa.Column("command", sa.Text, nullable=False),
    sa.Column("args", sa.Text, nullable=False, default="[]"),
    sa.Column("env", sa.Text, nullable=False, default="{}"),
    sa.Column("tags", sa.Text, nullable=False, default="[]"),
    sa.Column("source_kind", sa.Text),
    sa.Column("source_url", sa.Text),
    sa.Column("created_at", sa.Text, nullable=False),
    sa.Column("updated_at", sa.Text, nullable=False),
)

instances_table = sa.Table(
    "client_instances",
    metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("client_kind", sa.Text, nullable=False),
    sa.Column("config_path", sa.Text, nullable=False),
    sa.Column("is_default", sa.Boolean, nullable=False, default=False),
    sa.Column("last_synced", sa.Text),
    sa.Column("last_modified", sa.Text),
    sa.Column("created_at", sa.Text, nullable=False),
)

enablement_table = sa.Table(
    "instance_servers",
    metadata,
    sa.Column("instance_id", sa.Text, sa.ForeignKey("client_instances.id", ondelete="CASCADE"), primary_key=True),
    sa.Column("server_id", sa.Text, sa.ForeignKey("servers.id", ondelete="CASCADE"), primary_key=True),
    sa.Column("enabled", sa.Boolean, nullable=False, default=True),
)

backups_table = sa.Table(
    "backups",
    metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("instance_id", sa.Text, sa.ForeignKey("client_instances.id", ondelete="CASCADE"), nullable=False),
    sa.Column("backup_path", sa.Text, nullable=False),
    sa.Column("created_at", sa.Text, nullable=False),
)

settings_table = sa.Table(
    "settings",
    metadata,
    sa.Column("key", sa.Text, primary_key=True),
    sa.Column("value", sa.Text, nullable=False),
)


class SqliteStore:
    """Single-connection store; every public call runs in its own transaction."""

    def __init__(self, path: Path | str) -> None:
        self._path = str(path)
        url = "sqlite://" if self._path == ":memory:" else f"sqlite:///{self._path}"
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self._engine = sa.create_engine(url, connect_args={"check_same_thread": False})
            event.listen(self._engine, "connect", _enable_foreign_keys)
            self._conn: Connection = self._engine.connect()
            self._migrate()
        except exc.SQLAlchemyError as err:
            raise StoreIOError(f"Failed to open database {self._path}: {err}") from err
        logger.debug("store.opened", path=self._path)

    @property
    def lock(self) -> threading.RLock:
        """The store-wide lock; hold it to read several tables as one snapshot."""

        return self._lock

    def close(self) -> None:
        with self._lock:
            self._conn.close()
            self._engine.dispose()

    # ---- Servers ----

    def create_server(self, server: Server) -> Server:
        with self._transaction() as conn:
            if _exists(conn, servers_table, server.id):
                raise StoreConflictError(f"Server '{server.id}' already exists")
            conn.execute(servers_table.insert().values(**_server_row(server)))
        return server

    def update_server(self, server: Server) -> Server:
        with self._transaction() as conn:
            row = _server_row(server)
            row.pop("id")
            row.pop("created_at")
            result = conn.execute(
                servers_table.update().where(servers_table.c.id == server.id).values(**row)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Server '{server.id}' not found")
        return server

    def delete_server(self, server_id: str) -> None:
        with self._transaction() as conn:
            result = conn.execute(servers_table.delete().where(servers_table.c.id == server_id))
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Server '{server_id}' not found")

    def get_server(self, server_id: str) -> Server | None:
        with self._transaction() as conn:
            row = conn.execute(sa.select(servers_table).where(servers_table.c.id == server_id)).mappings().first()
            return _server_from_row(row) if row is not None else None

    def list_servers(self) -> List[Server]:
        with self._transaction() as conn:
            rows = conn.execute(sa.select(servers_table).order_by(servers_table.c.name)).mappings().all()
            return [_server_from_row(row) for row in rows]

    # ---- Client instances ----

    def create_instance(self, instance: ClientInstance) -> ClientInstance:
        with self._transaction() as conn:
            if _exists(conn, instances_table, instance.id):
                raise StoreConflictError(f"Instance '{instance.id}' already exists")
            conn.execute(instances_table.insert().values(**_instance_row(instance)))
            return _load_instance(conn, instance.id)

    def update_instance(self, instance: ClientInstance) -> ClientInstance:
        """Persist editable fields; ``last_modified`` is owned by :meth:`set_enablement`."""

        with self._transaction() as conn:
            row = _instance_row(instance)
            row.pop("id")
            row.pop("created_at")
            row.pop("last_modified")
            result = conn.execute(
                instances_table.update().where(instances_table.c.id == instance.id).values(**row)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Instance '{instance.id}' not found")
            return _load_instance(conn, instance.id)

    def mark_synced(self, instance_id: str, when: datetime) -> None:
        with self._transaction() as conn:
            result = conn.execute(
                instances_table.update()
                .where(instances_table.c.id == instance_id)
                .values(last_synced=format_timestamp(when))
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Instance '{instance_id}' not found")

    def delete_instance(self, instance_id: str) -> None:
        with self._transaction() as conn:
            result = conn.execute(instances_table.delete().where(instances_table.c.id == instance_id))
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Instance '{instance_id}' not found")

    def get_instance(self, instance_id: str) -> ClientInstance | None:
        with self._transaction() as conn:
            if not _exists(conn, instances_table, instance_id):
                return None
            return _load_instance(conn, instance_id)

    def list_instances(self) -> List[ClientInstance]:
        with self._transaction() as conn:
            rows = conn.execute(sa.select(instances_table).order_by(instances_table.c.name)).mappings().all()
            return [_instance_from_row(row, _enabled_ids(conn, row["id"])) for row in rows]

    # ---- Enablement ----

    def set_enablement(self, instance_id: str, server_id: str, enabled: bool) -> datetime:
        """Upsert the mapping and stamp ``last_modified``; returns the new stamp."""

        with self._transaction() as conn:
            previous = conn.execute(
                sa.select(instances_table.c.last_modified).where(instances_table.c.id == instance_id)
            ).first()
            if previous is None:
                raise RecordNotFoundError(f"Instance '{instance_id}' not found")
            if not _exists(conn, servers_table, server_id):
                raise RecordNotFoundError(f"Server '{server_id}' not found")
            stmt = sqlite_insert(enablement_table).values(
                instance_id=instance_id, server_id=server_id, enabled=enabled
            )
            conn.execute(
                stmt.on_conflict_do_update(
                    index_elements=[enablement_table.c.instance_id, enablement_table.c.server_id],
                    set_={"enabled": enabled},
                )
            )
            stamp = utcnow()
            last = parse_optional_timestamp(previous[0])
            if last is not None and stamp <= last:
                stamp = last + timedelta(microseconds=1)
            conn.execute(
                instances_table.update()
                .where(instances_table.c.id == instance_id)
                .values(last_modified=format_timestamp(stamp))
            )
            return stamp

    def enabled_servers_for(self, instance_id: str) -> List[str]:
        with self._transaction() as conn:
            return _enabled_ids(conn, instance_id)

    # ---- Backups ----

    def create_backup(self, backup: ConfigBackup) -> ConfigBackup:
        with self._transaction() as conn:
            if not _exists(conn, instances_table, backup.instance_id):
                raise RecordNotFoundError(f"Instance '{backup.instance_id}' not found")
            conn.execute(
                backups_table.insert().values(
                    id=backup.id,
                    instance_id=backup.instance_id,
                    backup_path=backup.backup_path,
                    created_at=format_timestamp(backup.created_at),
                )
            )
        return backup

    def backups_for(self, instance_id: str) -> List[ConfigBackup]:
        """Backups recorded for ``instance_id``, most recent first."""

        with self._transaction() as conn:
            return _backups(conn, instance_id)

    def prune_backups(self, instance_id: str, keep: int) -> List[ConfigBackup]:
        with self._transaction() as conn:
            removed = _backups(conn, instance_id)[max(keep, 0):]
            _delete_backups(conn, removed)
            return removed

    def backups_older_than(self, instance_id: str, older_than: datetime) -> List[ConfigBackup]:
        with self._transaction() as conn:
            return [item for item in _backups(conn, instance_id) if item.created_at < older_than]

    def delete_backups(self, backup_ids: Iterable[str]) -> int:
        ids = list(backup_ids)
        if not ids:
            return 0
        with self._transaction() as conn:
            return conn.execute(backups_table.delete().where(backups_table.c.id.in_(ids))).rowcount

    # ---- Settings ----

    def get_setting(self, key: str) -> str | None:
        with self._transaction() as conn:
            row = conn.execute(sa.select(settings_table.c.value).where(settings_table.c.key == key)).first()
            return row[0] if row is not None else None

    def set_setting(self, key: str, value: str) -> None:
        with self._transaction() as conn:
            stmt = sqlite_insert(settings_table).values(key=key, value=value)
            conn.execute(stmt.on_conflict_do_update(index_elements=[settings_table.c.key], set_={"value": value}))

    def get_app_settings(self) -> AppSettings:
        raw = self.get_setting(APP_SETTINGS_KEY)
        try:
            return AppSettings.from_json(raw)
        except (ValueError, TypeError) as err:
            raise StoreCorruptError(f"Stored '{APP_SETTINGS_KEY}' is unreadable: {err}") from err

    def set_app_settings(self, settings: AppSettings) -> None:
        self.set_setting(APP_SETTINGS_KEY, settings.to_json())

    # ---- Internals ----

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        with self._lock:
            try:
                with self._conn.begin():
                    yield self._conn
            except exc.IntegrityError as err:
                raise StoreCorruptError(f"Integrity violation: {err.orig}") from err
            except exc.SQLAlchemyError as err:
                raise StoreIOError(f"Database error: {err}") from err

    def _migrate(self) -> None:
        with self._conn.begin():
            metadata.create_all(self._conn)
            columns = {column["name"] for column in sa.inspect(self._conn).get_columns("client_instances")}
            if "last_modified" not in columns:
                self._conn.execute(sa.text("ALTER TABLE client_instances ADD COLUMN last_modified TEXT"))
                logger.info("store.migrated", column="client_instances.last_modified")


def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _exists(conn: Connection, table: sa.Table, record_id: str) -> bool:
    return conn.execute(sa.select(table.c.id).where(table.c.id == record_id)).first() is not None


def _server_row(server: Server) -> Dict[str, Any]:
    source = server.source
    return {
        "id": server.id,
        "name": server.name,
        "description": server.description,
        "command": server.command,
        "args": json.dumps(list(server.args)),
        "env": json.dumps(dict(server.env)),
        "tags": json.dumps(list(server.tags)),
        "source_kind": source.kind.value if source else None,
        "source_url": source.url if source else None,
        "created_at": format_timestamp(server.created_at),
        "updated_at": format_timestamp(server.updated_at),
    }


def _server_from_row(row: Any) -> Server:
    source = None
    if row["source_kind"]:
        source = ServerSource(SourceKind.parse(row["source_kind"]), row["source_url"])
    return Server(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        command=row["command"],
        args=_decode_json(row["args"], list, "servers.args"),
        env=_decode_json(row["env"], dict, "servers.env"),
        tags=_decode_json(row["tags"], list, "servers.tags"),
        source=source,
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def _decode_json(raw: str | None, expected: type, column: str) -> Any:
    if not raw:
        return expected()
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as err:
        raise StoreCorruptError(f"Column {column} holds invalid JSON: {err}") from err
    if not isinstance(value, expected):
        raise StoreCorruptError(f"Column {column} holds {type(value).__name__}, expected {expected.__name__}")
    return value


def _instance_row(instance: ClientInstance) -> Dict[str, Any]:
    return {
        "id": instance.id,
        "name": instance.name,
        "client_kind": instance.client_kind.value,
        "config_path": instance.config_path,
        "is_default": instance.is_default,
        "last_synced": format_timestamp(instance.last_synced) if instance.last_synced else None,
        "last_modified": format_timestamp(instance.last_modified) if instance.last_modified else None,
        "created_at": format_timestamp(instance.created_at),
    }


def _instance_from_row(row: Any, enabled: List[str]) -> ClientInstance:
    return ClientInstance(
        id=row["id"],
        name=row["name"],
        client_kind=ClientKind.parse(row["client_kind"]),
        config_path=row["config_path"],
        is_default=bool(row["is_default"]),
        last_synced=parse_optional_timestamp(row["last_synced"]),
        last_modified=parse_optional_timestamp(row["last_modified"]),
        created_at=parse_timestamp(row["created_at"]),
        enabled_servers=enabled,
    )


def _load_instance(conn: Connection, instance_id: str) -> ClientInstance:
    row = conn.execute(sa.select(instances_table).where(instances_table.c.id == instance_id)).mappings().one()
    return _instance_from_row(row, _enabled_ids(conn, instance_id))


def _enabled_ids(conn: Connection, instance_id: str) -> List[str]:
    rows = conn.execute(
        sa.select(enablement_table.c.server_id)
        .where(enablement_table.c.instance_id == instance_id)
        .where(enablement_table.c.enabled == sa.true())
        .order_by(enablement_table.c.server_id)
    )
    return [row[0] for row in rows]


def _backups(conn: Connection, instance_id: str) -> List[ConfigBackup]:
    rows = conn.execute(
        sa.select(backups_table)
        .where(backups_table.c.instance_id == instance_id)
        .order_by(backups_table.c.created_at.desc(), sa.literal_column("rowid").desc())
    ).mappings()
    return [
        ConfigBackup(
            id=row["id"],
            instance_id=row["instance_id"],
            backup_path=row["backup_path"],
            created_at=parse_timestamp(row["created_at"]),
        )
        for row in rows
    ]


def _delete_backups(conn: Connection, records: List[ConfigBackup]) -> None:
    if records:
        conn.execute(backups_table.delete().where(backups_table.c.id.in_([item.id for item in records])))


__all__ = [
    "RecordNotFoundError",
    "SqliteStore",
    "StoreConflictError",
    "StoreCorruptError",
    "StoreError",
    "StoreIOError",
]
