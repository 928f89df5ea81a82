"""Runtime settings for the MCP Hub host process."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from mcphub import __version__

APP_DIR_NAME = "MCP Hub"
APP_DIR_NAME_LINUX = "mcp-hub"
DATABASE_FILENAME = "mcp-hub.db"


@dataclass(frozen=True)
class RuntimeSettings:
    home_dir: Path
    backup_dir: Path
    log_dir: Path
    mcp_dir: Path
    cli_version: str = __version__

    @property
    def database_path(self) -> Path:
        return self.home_dir / DATABASE_FILENAME


def _default_home_dir() -> Path:
    override = os.environ.get("MCPHUB_HOME")
    if override:
        return Path(override).expanduser()
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / APP_DIR_NAME
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / APP_DIR_NAME_LINUX


def _default_mcp_dir() -> Path:
    override = os.environ.get("MCPHUB_MCP_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".mcp"


def load_settings() -> RuntimeSettings:
    base = _default_home_dir()
    return RuntimeSettings(
        home_dir=base,
        backup_dir=base / "backups",
        log_dir=base / "logs",
        mcp_dir=_default_mcp_dir(),
    )


SETTINGS = load_settings()
