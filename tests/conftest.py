from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
SANDBOX = ROOT / ".test_place"
os.environ.setdefault("MCPHUB_HOME", str(SANDBOX / "app-data"))
os.environ.setdefault("MCPHUB_MCP_DIR", str(SANDBOX / "mcp"))
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from mcphub import __version__  # noqa: E402
from mcphub.adapters.sqlite_store import SqliteStore  # noqa: E402
from mcphub.settings import RuntimeSettings  # noqa: E402


@pytest.fixture()
def runtime_settings(tmp_path: Path) -> RuntimeSettings:
    base = tmp_path / "runtime"
    home = base / "home"
    log_dir = base / "logs"
    for directory in (home, log_dir):
        directory.mkdir(parents=True, exist_ok=True)
    return RuntimeSettings(
        home_dir=home,
        backup_dir=home / "backups",
        log_dir=log_dir,
        mcp_dir=tmp_path / "dot-mcp",
        cli_version=__version__,
    )


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[SqliteStore]:
    db = SqliteStore(tmp_path / "state" / "mcp-hub.db")
    try:
        yield db
    finally:
        db.close()
