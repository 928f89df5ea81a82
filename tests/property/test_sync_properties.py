from __future__ import annotations

import json
import tempfile
from pathlib import Path

import yaml
from hypothesis import given, settings
from hypothesis import strategies as st

from mcphub.app.discovery.mirror import render_document
from mcphub.domain.mcp.codec import ServerEntry, import_from, read_config, write_full, write_preserving
from mcphub.domain.mcp.value_objects import REDACTED, Server, is_sensitive_key, sanitize_name

_word = st.text(alphabet=st.characters(min_codepoint=97, max_codepoint=122), min_size=1, max_size=12)
_arg = st.text(alphabet=st.characters(blacklist_categories=("Cs", "Cc")), max_size=20)
_env_key = st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZ_", min_size=1, max_size=12)

entries_strategy = st.dictionaries(
    _word,
    st.builds(
        ServerEntry,
        command=_word,
        args=st.lists(_arg, max_size=4),
        env=st.dictionaries(_env_key, _arg, max_size=3),
    ),
    max_size=5,
)

foreign_strategy = st.dictionaries(
    _word.filter(lambda key: key != "mcpServers"),
    st.one_of(st.integers(), st.booleans(), _arg, st.lists(st.integers(), max_size=3)),
    max_size=5,
)


@given(st.text(alphabet=st.characters(min_codepoint=32, max_codepoint=126), max_size=40))
def test_sanitize_is_idempotent(name: str) -> None:
    once = sanitize_name(name)
    assert sanitize_name(once) == once
    assert not once.startswith("-") and not once.endswith("-")
    assert once == once.lower()


@settings(max_examples=40, deadline=None)
@given(foreign_strategy, entries_strategy)
def test_merge_write_preserves_foreign_keys(foreign: dict, entries: dict) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "settings.json"
        target.write_text(json.dumps({**foreign, "mcpServers": {"stale": {"command": "x"}}}), encoding="utf-8")
        write_preserving(target, entries)
        data = json.loads(target.read_text(encoding="utf-8"))
        assert {key: value for key, value in data.items() if key != "mcpServers"} == foreign
        assert read_config(target) == entries


@settings(max_examples=40, deadline=None)
@given(entries_strategy)
def test_import_reproduces_written_entries(entries: dict) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "mcp.json"
        write_full(target, entries)
        imported = import_from(target)
        assert {server.name: ServerEntry.from_server(server) for server in imported} == entries


@settings(max_examples=40, deadline=None)
@given(st.dictionaries(_env_key, st.text(alphabet="xyz", min_size=8, max_size=16), max_size=4))
def test_mirror_never_leaks_sensitive_values(env: dict) -> None:
    server = Server.new("Masked", "cmd", env=env)
    text = render_document(server)
    _, header, _ = text.split("---\n", 2)
    published = yaml.safe_load(header)["env"]
    public = {value for key, value in env.items() if not is_sensitive_key(key)}
    for key, value in env.items():
        if is_sensitive_key(key):
            assert published[key] == REDACTED
            if not any(value in item for item in public):
                assert value not in text
        else:
            assert published[key] == value
