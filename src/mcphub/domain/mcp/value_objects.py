"""Value objects describing registered MCP servers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from mcphub.domain.timestamps import format_timestamp, parse_timestamp, utcnow

_SENSITIVE_MARKERS = ("key", "secret", "token", "password")
REDACTED = "***REDACTED***"


def sanitize_name(name: str) -> str:
    """Lowercase ``name`` and collapse it to ``[alnum_-]`` for config keys and filenames."""

    lowered = name.lower()
    chars = [ch if ch.isalnum() or ch in "-_" else "-" for ch in lowered]
    return "".join(chars).strip("-")


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


class SourceKind(str, Enum):
    MANUAL = "manual"
    IMPORTED = "imported"
    REGISTRY = "registry"

    @classmethod
    def parse(cls, value: str | None) -> "SourceKind":
        try:
            return cls(value) if value else cls.MANUAL
        except ValueError:
            return cls.MANUAL


@dataclass(frozen=True)
class ServerSource:
    kind: SourceKind = SourceKind.MANUAL
    url: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"sourceType": self.kind.value}
        if self.url:
            payload["url"] = self.url
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerSource":
        return cls(kind=SourceKind.parse(data.get("sourceType")), url=data.get("url"))


@dataclass(frozen=True)
class Server:
    """A named command-and-arguments definition plus environment."""

    id: str
    name: str
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    description: str | None = None
    source: ServerSource | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", [str(arg) for arg in self.args])
        object.__setattr__(self, "env", {str(k): str(v) for k, v in self.env.items()})
        object.__setattr__(self, "tags", [str(tag) for tag in self.tags])

    @classmethod
    def new(
        cls,
        name: str,
        command: str,
        args: List[str] | None = None,
        *,
        env: Dict[str, str] | None = None,
        tags: List[str] | None = None,
        description: str | None = None,
        source: ServerSource | None = None,
    ) -> "Server":
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            name=name,
            command=command,
            args=list(args or []),
            env=dict(env or {}),
            tags=list(tags or []),
            description=description,
            source=source or ServerSource(SourceKind.MANUAL),
            created_at=now,
            updated_at=now,
        )

    @property
    def key(self) -> str:
        return sanitize_name(self.name)

    def updated(self, **changes: Any) -> "Server":
        """Return a copy with ``changes`` applied and ``updated_at`` stamped; ``id`` never changes."""

        changes.pop("id", None)
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "env": dict(self.env),
            "tags": list(self.tags),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.description:
            payload["description"] = self.description
        if self.source is not None:
            payload["source"] = self.source.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Server":
        source = data.get("source")
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            name=str(data["name"]),
            command=str(data["command"]),
            args=list(data.get("args") or []),
            env=dict(data.get("env") or {}),
            tags=list(data.get("tags") or []),
            description=data.get("description"),
            source=ServerSource.from_dict(source) if isinstance(source, dict) else None,
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServerHealth:
    server_id: str
    status: HealthStatus
    error_message: str | None = None
    last_checked: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "serverId": self.server_id,
            "status": self.status.value,
            "lastChecked": format_timestamp(self.last_checked),
        }
        if self.error_message:
            payload["errorMessage"] = self.error_message
        return payload


__all__ = [
    "HealthStatus",
    "REDACTED",
    "Server",
    "ServerHealth",
    "ServerSource",
    "SourceKind",
    "is_sensitive_key",
    "sanitize_name",
]
