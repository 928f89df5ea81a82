"""Reading and writing the ``{"mcpServers": {...}}`` client config format."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

from mcphub.domain.clients.value_objects import ClientKind

from .value_objects import Server, ServerSource, SourceKind

SERVERS_KEY = "mcpServers"

# Clients whose config file is shared with unrelated application settings.
MERGE_WRITE_CLIENTS = frozenset(
    {
        ClientKind.CLAUDE_CODE,
        ClientKind.ZED,
        ClientKind.AUGMENT,
        ClientKind.GEMINI_CLI,
    }
)


class CodecError(RuntimeError):
    """Base error for client config encoding and decoding."""


class ConfigParseError(CodecError):
    """Raised when a config file is not valid JSON or holds a malformed entry."""


class NotAnObjectError(CodecError):
    """Raised when a merge-write target has a non-object JSON root."""


class ConfigIOError(CodecError):
    """Raised when a config file cannot be read or written."""


@dataclass(frozen=True)
class ServerEntry:
    """On-disk shape of one server inside ``mcpServers``."""

    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_server(cls, server: Server) -> "ServerEntry":
        return cls(command=server.command, args=list(server.args), env=dict(server.env))

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"command": self.command, "args": list(self.args)}
        if self.env:
            payload["env"] = dict(self.env)
        return payload

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "ServerEntry":
        if not isinstance(data, dict):
            raise ConfigParseError(f"Server entry '{name}' must be an object")
        command = data.get("command")
        if not isinstance(command, str):
            raise ConfigParseError(f"Server entry '{name}' is missing a string 'command'")
        args = data.get("args", [])
        if not isinstance(args, list) or not all(isinstance(item, str) for item in args):
            raise ConfigParseError(f"Server entry '{name}' has non-string 'args'")
        env = data.get("env") or {}
        if not isinstance(env, dict) or not all(isinstance(value, str) for value in env.values()):
            raise ConfigParseError(f"Server entry '{name}' has non-string 'env' values")
        return cls(command=command, args=list(args), env=dict(env))


def read_config(path: Path) -> Dict[str, ServerEntry]:
    """Return the servers declared in ``path``; absent or empty files yield ``{}``."""

    root = _load_root(path)
    if root is None:
        return {}
    if not isinstance(root, dict):
        raise ConfigParseError(f"{path}: expected a JSON object at the root")
    servers = root.get(SERVERS_KEY)
    if servers is None:
        return {}
    if not isinstance(servers, dict):
        raise ConfigParseError(f"{path}: '{SERVERS_KEY}' must be an object")
    return {str(name): ServerEntry.from_dict(name, entry) for name, entry in servers.items()}


def write_full(path: Path, servers: Mapping[str, ServerEntry]) -> None:
    """Replace the whole file with ``{"mcpServers": servers}``."""

    _write_json(path, {SERVERS_KEY: _encode_servers(servers)})


def write_preserving(path: Path, servers: Mapping[str, ServerEntry]) -> None:
    """Replace only ``mcpServers`` and keep every other top-level key in place."""

    root = _load_root(path)
    if root is None:
        root = {}
    if not isinstance(root, dict):
        raise NotAnObjectError(f"{path}: cannot merge into a non-object JSON root")
    root[SERVERS_KEY] = _encode_servers(servers)
    _write_json(path, root)


def import_from(path: Path) -> List[Server]:
    """Build fresh ``Server`` records from the entries found in ``path``."""

    source = ServerSource(SourceKind.IMPORTED, str(path))
    return [
        Server.new(name, entry.command, entry.args, env=entry.env, source=source)
        for name, entry in read_config(path).items()
    ]


# ---- Internals ----


def _load_root(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError as exc:
        raise ConfigParseError(f"{path}: not valid UTF-8 ({exc})") from exc
    except OSError as exc:
        raise ConfigIOError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(f"{path}: invalid JSON ({exc})") from exc


def _encode_servers(servers: Mapping[str, ServerEntry]) -> Dict[str, Any]:
    return {name: entry.to_dict() for name, entry in servers.items()}


def _write_json(path: Path, payload: Dict[str, Any]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ConfigIOError(f"Failed to write {path}: {exc}") from exc


__all__ = [
    "CodecError",
    "ConfigIOError",
    "ConfigParseError",
    "MERGE_WRITE_CLIENTS",
    "NotAnObjectError",
    "SERVERS_KEY",
    "ServerEntry",
    "import_from",
    "read_config",
    "write_full",
    "write_preserving",
]
