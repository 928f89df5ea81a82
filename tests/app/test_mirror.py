from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml

from mcphub.app.discovery.mirror import DiscoveryMirror, is_owned, render_document
from mcphub.domain.mcp.value_objects import REDACTED, Server


def _front_matter(text: str) -> dict:
    _, header, _ = text.split("---\n", 2)
    return yaml.safe_load(header)


def test_one_owned_file_per_server(tmp_path: Path) -> None:
    directory = tmp_path / ".mcp"
    mirror = DiscoveryMirror(directory)
    server = Server.new("My Server", "npx", ["-y", "pkg"])

    written = mirror.write_all([server])

    assert [path.name for path in written] == ["mcp-hub-my-server.md"]
    assert mirror.owned_files() == [directory / "mcp-hub-my-server.md"]


def test_removed_server_file_is_deleted_foreign_kept(tmp_path: Path) -> None:
    directory = tmp_path / ".mcp"
    mirror = DiscoveryMirror(directory)
    server = Server.new("My Server", "npx")
    mirror.write_all([server])
    foreign = directory / "notes.md"
    foreign.write_text("mine", encoding="utf-8")
    lookalike = directory / "mcp-hub-notes.txt"
    lookalike.write_text("mine too", encoding="utf-8")

    mirror.write_all([])

    assert mirror.owned_files() == []
    assert foreign.read_text(encoding="utf-8") == "mine"
    assert lookalike.exists()


def test_clear_removes_only_owned_files(tmp_path: Path) -> None:
    directory = tmp_path / ".mcp"
    mirror = DiscoveryMirror(directory)
    mirror.write_all([Server.new("a", "x"), Server.new("b", "y")])
    (directory / "keep.md").write_text("k", encoding="utf-8")

    assert mirror.clear() == 2
    assert sorted(path.name for path in directory.iterdir()) == ["keep.md"]
    assert DiscoveryMirror(tmp_path / "absent").clear() == 0


@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
def test_symlinks_are_never_owned(tmp_path: Path) -> None:
    directory = tmp_path / ".mcp"
    directory.mkdir()
    outside = tmp_path / "outside.md"
    outside.write_text("external", encoding="utf-8")
    link = directory / "mcp-hub-linked.md"
    link.symlink_to(outside)

    mirror = DiscoveryMirror(directory)
    assert not is_owned(link)
    mirror.write_all([Server.new("linked", "cmd")])
    mirror.clear()

    assert link.is_symlink()
    assert outside.read_text(encoding="utf-8") == "external"


def test_secrets_are_masked(tmp_path: Path) -> None:
    server = Server.new(
        "GitHub",
        "npx",
        ["--flag", "value: with colon"],
        env={"GITHUB_TOKEN": "ghp_secret", "API_KEY": "k", "REGION": "eu"},
        tags=["vcs"],
        description="GitHub integration",
    )
    text = render_document(server)

    assert "ghp_secret" not in text
    meta = _front_matter(text)
    assert meta["env"] == {"GITHUB_TOKEN": REDACTED, "API_KEY": REDACTED, "REGION": "eu"}
    assert meta["args"] == ["--flag", "value: with colon"]
    assert meta["provider"] == "MCP Hub"
    assert meta["id"] == server.id
    assert meta["tags"] == ["vcs"]
    assert '"value: with colon"' in text
    assert "# GitHub" in text
    assert "- `GITHUB_TOKEN`" in text
    assert text.endswith("*Managed by [MCP Hub](https://github.com/mcp-hub)*\n")


def test_colliding_names_write_one_file(tmp_path: Path) -> None:
    mirror = DiscoveryMirror(tmp_path)
    first = Server.new("Dup", "first")
    written = mirror.write_all([first, Server.new("dup", "second")])
    assert len(written) == 1
    assert _front_matter(written[0].read_text(encoding="utf-8"))["id"] == first.id
