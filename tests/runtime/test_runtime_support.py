from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from mcphub.settings import RuntimeSettings, load_settings
from mcphub.utils.locks import ReadWriteLock
from mcphub.utils.telemetry import (
    TelemetryRecordError,
    clear,
    iter_events,
    record_structured_event,
    summarize,
    telemetry_path,
)


def test_settings_honour_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCPHUB_HOME", str(tmp_path / "hub"))
    monkeypatch.setenv("MCPHUB_MCP_DIR", str(tmp_path / "mirror"))
    settings = load_settings()
    assert settings.home_dir == tmp_path / "hub"
    assert settings.backup_dir == tmp_path / "hub" / "backups"
    assert settings.database_path == tmp_path / "hub" / "mcp-hub.db"
    assert settings.mcp_dir == tmp_path / "mirror"


def test_telemetry_records_and_summarises(runtime_settings: RuntimeSettings, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MCPHUB_TELEMETRY", raising=False)
    record_structured_event(runtime_settings, "sync.instance", status="start", component="sync")
    record_structured_event(runtime_settings, "sync.instance", status="success", component="sync", duration_ms=1.5)
    events = list(iter_events(runtime_settings))
    assert [evt["status"] for evt in events] == ["start", "success"]
    assert events[1]["durationMs"] == 1.5
    assert summarize(events) == {"total": 2, "by_event": {"sync.instance": 2}, "by_status": {"start": 1, "success": 1}}
    clear(runtime_settings)
    assert list(iter_events(runtime_settings)) == []


def test_telemetry_rejects_bad_records(runtime_settings: RuntimeSettings, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MCPHUB_TELEMETRY", raising=False)
    with pytest.raises(ValueError):
        record_structured_event(runtime_settings, " ")
    with pytest.raises(ValueError):
        record_structured_event(runtime_settings, "x", level="debug")
    with pytest.raises(TelemetryRecordError):
        record_structured_event(runtime_settings, "x", duration_ms=-1.0)
    assert list(iter_events(runtime_settings)) == []


def test_telemetry_skips_truncated_lines(runtime_settings: RuntimeSettings, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MCPHUB_TELEMETRY", raising=False)
    record_structured_event(runtime_settings, "server.add", status="start")
    with telemetry_path(runtime_settings).open("a", encoding="utf-8") as fh:
        fh.write('{"event": "server.add", "sta\n\n')
    record_structured_event(runtime_settings, "server.add", status="success")
    assert [evt["status"] for evt in iter_events(runtime_settings)] == ["start", "success"]


def test_writer_excludes_readers() -> None:
    lock = ReadWriteLock()
    seen: list[str] = []

    def reader() -> None:
        with lock.read():
            seen.append("read")

    with lock.write():
        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        assert seen == []
    thread.join(timeout=2)
    assert seen == ["read"]


def test_readers_share_the_lock() -> None:
    lock = ReadWriteLock()
    with lock.read():
        done = threading.Event()

        def other() -> None:
            with lock.read():
                done.set()

        thread = threading.Thread(target=other)
        thread.start()
        assert done.wait(timeout=2)
        thread.join(timeout=2)
