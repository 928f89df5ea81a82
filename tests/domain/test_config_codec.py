from __future__ import annotations

import json
from pathlib import Path

import pytest

from mcphub.domain.clients.value_objects import ClientKind
from mcphub.domain.mcp.codec import (
    MERGE_WRITE_CLIENTS,
    ConfigParseError,
    NotAnObjectError,
    ServerEntry,
    import_from,
    read_config,
    write_full,
    write_preserving,
)
from mcphub.domain.mcp.value_objects import SourceKind


def test_entry_omits_empty_env() -> None:
    assert ServerEntry("npx", ["-y", "pkg"]).to_dict() == {"command": "npx", "args": ["-y", "pkg"]}
    assert ServerEntry("npx", [], {"A": "1"}).to_dict() == {"command": "npx", "args": [], "env": {"A": "1"}}


def test_read_missing_and_empty_files(tmp_path: Path) -> None:
    assert read_config(tmp_path / "absent.json") == {}
    empty = tmp_path / "empty.json"
    empty.write_text("  \n", encoding="utf-8")
    assert read_config(empty) == {}


def test_read_without_servers_key(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
    assert read_config(target) == {}


def test_read_parses_entries(tmp_path: Path) -> None:
    target = tmp_path / "mcp.json"
    target.write_text(
        json.dumps({"mcpServers": {"fs": {"command": "npx", "args": ["fs"], "env": {"ROOT": "/tmp"}}, "bare": {"command": "x"}}}),
        encoding="utf-8",
    )
    entries = read_config(target)
    assert entries["fs"] == ServerEntry("npx", ["fs"], {"ROOT": "/tmp"})
    assert entries["bare"] == ServerEntry("x")


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"mcpServers": {"a": {"args": []}}}),
        json.dumps({"mcpServers": {"a": {"command": "x", "args": [1]}}}),
        json.dumps({"mcpServers": ["a"]}),
        json.dumps([1, 2]),
    ],
)
def test_read_rejects_malformed(tmp_path: Path, content: str) -> None:
    target = tmp_path / "bad.json"
    target.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigParseError):
        read_config(target)


def test_write_full_creates_parents_and_replaces(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "dir" / "mcp.json"
    write_full(target, {"my-server": ServerEntry("npx", ["-y", "pkg"])})
    assert json.loads(target.read_text(encoding="utf-8")) == {
        "mcpServers": {"my-server": {"command": "npx", "args": ["-y", "pkg"]}}
    }

    target.write_text(json.dumps({"theme": "dark", "mcpServers": {}}), encoding="utf-8")
    write_full(target, {})
    assert json.loads(target.read_text(encoding="utf-8")) == {"mcpServers": {}}


def test_write_preserving_keeps_other_keys_in_order(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(
        json.dumps({"theme": "dark", "mcpServers": {"old": {"command": "x", "args": []}}, "fontSize": 14}),
        encoding="utf-8",
    )
    write_preserving(target, {"new": ServerEntry("npx", ["pkg"])})
    data = json.loads(target.read_text(encoding="utf-8"))
    assert list(data) == ["theme", "mcpServers", "fontSize"]
    assert data["theme"] == "dark"
    assert data["fontSize"] == 14
    assert data["mcpServers"] == {"new": {"command": "npx", "args": ["pkg"]}}


def test_write_preserving_on_absent_file(tmp_path: Path) -> None:
    target = tmp_path / "new.json"
    write_preserving(target, {"a": ServerEntry("c")})
    assert json.loads(target.read_text(encoding="utf-8")) == {"mcpServers": {"a": {"command": "c", "args": []}}}


def test_write_preserving_rejects_non_object_root(tmp_path: Path) -> None:
    target = tmp_path / "list.json"
    target.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(NotAnObjectError):
        write_preserving(target, {})
    assert target.read_text(encoding="utf-8") == "[1, 2, 3]"


def test_import_assigns_fresh_ids(tmp_path: Path) -> None:
    target = tmp_path / "claude_desktop_config.json"
    target.write_text(
        json.dumps({"mcpServers": {"github": {"command": "npx", "args": ["gh"], "env": {"GITHUB_TOKEN": "t"}}}}),
        encoding="utf-8",
    )
    first = import_from(target)
    second = import_from(target)
    assert [server.name for server in first] == ["github"]
    assert first[0].id != second[0].id
    assert first[0].env == {"GITHUB_TOKEN": "t"}
    assert first[0].source is not None
    assert first[0].source.kind is SourceKind.IMPORTED
    assert first[0].source.url == str(target)


def test_merge_write_clients() -> None:
    assert MERGE_WRITE_CLIENTS == {ClientKind.CLAUDE_CODE, ClientKind.ZED, ClientKind.AUGMENT, ClientKind.GEMINI_CLI}


def test_undecodable_bytes_are_parse_errors(tmp_path: Path) -> None:
    target = tmp_path / "latin.json"
    target.write_bytes(b'{"mcpServers": {"a": {"command": "\xff"}}}')
    with pytest.raises(ConfigParseError):
        read_config(target)
    with pytest.raises(ConfigParseError):
        import_from(target)
    with pytest.raises(ConfigParseError):
        write_preserving(target, {})
    assert target.read_bytes() == b'{"mcpServers": {"a": {"command": "\xff"}}}'
