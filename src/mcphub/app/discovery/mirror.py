"""Markdown mirror of the registry under ``~/.mcp`` for file-based discovery."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from mcphub.domain.mcp.value_objects import REDACTED, Server, is_sensitive_key, sanitize_name
from mcphub.domain.timestamps import format_timestamp
from mcphub.utils.logging import get_logger

logger = get_logger(__name__)

OWNED_PREFIX = "mcp-hub-"
OWNED_SUFFIX = ".md"
PROVIDER = "MCP Hub"
_FOOTER = "---\n*Managed by [MCP Hub](https://github.com/mcp-hub)*\n"


class MirrorError(RuntimeError):
    """Raised when the discovery directory cannot be written or cleaned."""


class _Quoted(str):
    """String always emitted double-quoted in front-matter."""


class _FrontMatterDumper(yaml.SafeDumper):
    pass


def _represent_quoted(dumper: yaml.SafeDumper, data: _Quoted) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


_FrontMatterDumper.add_representer(_Quoted, _represent_quoted)


def mirror_filename(server: Server) -> str:
    return f"{OWNED_PREFIX}{sanitize_name(server.name)}{OWNED_SUFFIX}"


def is_owned(path: Path) -> bool:
    """Only regular files named ``mcp-hub-*.md`` belong to the mirror."""

    name = path.name
    if not (name.startswith(OWNED_PREFIX) and name.endswith(OWNED_SUFFIX)):
        return False
    return path.is_file() and not path.is_symlink()


def render_front_matter(server: Server) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": server.id, "name": server.name}
    if server.description:
        data["description"] = server.description
    data["command"] = server.command
    data["args"] = [_Quoted(arg) for arg in server.args]
    data["env"] = {
        key: _Quoted(REDACTED if is_sensitive_key(key) else value) for key, value in server.env.items()
    }
    data["tags"] = list(server.tags)
    data["provider"] = PROVIDER
    data["updated_at"] = format_timestamp(server.updated_at)
    return data


def render_document(server: Server) -> str:
    """Front-matter block followed by a human-readable summary; env values never reach the body."""

    header = yaml.dump(
        render_front_matter(server),
        Dumper=_FrontMatterDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    lines: List[str] = ["---\n", header, "---\n\n", f"# {server.name}\n\n"]
    if server.description:
        lines.append(f"{server.description}\n\n")
    lines.append("## Configuration\n\n")
    lines.append(f"**Command:** `{server.command}`\n\n")
    if server.args:
        lines.append("**Arguments:**\n")
        lines.extend(f"- `{arg}`\n" for arg in server.args)
        lines.append("\n")
    if server.env:
        lines.append("**Environment Variables:**\n")
        lines.extend(f"- `{key}`\n" for key in server.env)
        lines.append("\n")
    if server.tags:
        lines.append(f"**Tags:** {', '.join(server.tags)}\n\n")
    lines.append(_FOOTER)
    return "".join(lines)


class DiscoveryMirror:
    """Owns the ``mcp-hub-*.md`` files inside one directory and nothing else there."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        return self._directory

    def write_all(self, servers: Iterable[Server]) -> List[Path]:
        written: Dict[str, Path] = {}
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            for server in servers:
                filename = mirror_filename(server)
                if filename in written:
                    logger.warning("mirror.name_collision", filename=filename, server_id=server.id)
                    continue
                target = self._directory / filename
                if target.is_symlink():
                    logger.warning("mirror.symlink_skipped", path=str(target))
                    continue
                target.write_text(render_document(server), encoding="utf-8")
                written[filename] = target
            removed = self._remove_owned(keep=set(written))
        except OSError as exc:
            raise MirrorError(f"Failed to update {self._directory}: {exc}") from exc
        logger.info("mirror.written", directory=str(self._directory), files=len(written), removed=removed)
        return list(written.values())

    def clear(self) -> int:
        if not self._directory.exists():
            return 0
        try:
            removed = self._remove_owned(keep=set())
        except OSError as exc:
            raise MirrorError(f"Failed to clear {self._directory}: {exc}") from exc
        logger.info("mirror.cleared", directory=str(self._directory), removed=removed)
        return removed

    def owned_files(self) -> List[Path]:
        if not self._directory.is_dir():
            return []
        return sorted(path for path in self._directory.iterdir() if is_owned(path))

    def _remove_owned(self, *, keep: set) -> int:
        removed = 0
        for path in self.owned_files():
            if path.name in keep:
                continue
            path.unlink()
            removed += 1
        return removed


__all__ = [
    "DiscoveryMirror",
    "MirrorError",
    "OWNED_PREFIX",
    "is_owned",
    "mirror_filename",
    "render_document",
    "render_front_matter",
]
