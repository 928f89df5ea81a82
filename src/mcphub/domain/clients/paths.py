"""Default config file locations for each supported client."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple

from .value_objects import ClientKind


class HostOS(str, Enum):
    MACOS = "macos"
    WINDOWS = "windows"
    LINUX = "linux"


class PathUnresolvedError(RuntimeError):
    """Raised when a client kind has no config location on this host."""


@dataclass(frozen=True)
class BaseDirectories:
    """The three roots every config location is expressed against."""

    home: Path
    config: Path
    app_support: Path

    @classmethod
    def for_host(cls, host: HostOS | None = None) -> "BaseDirectories":
        host = host or current_os()
        home = Path.home()
        if host is HostOS.MACOS:
            support = home / "Library" / "Application Support"
            return cls(home=home, config=support, app_support=support)
        if host is HostOS.WINDOWS:
            appdata = os.environ.get("APPDATA")
            config = Path(appdata) if appdata else home / "AppData" / "Roaming"
            return cls(home=home, config=config, app_support=config)
        xdg = os.environ.get("XDG_CONFIG_HOME")
        config = Path(xdg) if xdg else home / ".config"
        return cls(home=home, config=config, app_support=config)


def current_os() -> HostOS:
    if sys.platform == "darwin":
        return HostOS.MACOS
    if sys.platform.startswith("win"):
        return HostOS.WINDOWS
    return HostOS.LINUX


# (base, relative path); base is one of "home", "config", "app_support".
_Location = Tuple[str, str]

_VSCODE_STORAGE = "Code/User/globalStorage"

_LOCATIONS: Dict[ClientKind, _Location] = {
    ClientKind.CLAUDE_DESKTOP: ("app_support", "Claude/claude_desktop_config.json"),
    ClientKind.CLAUDE_CODE: ("home", ".claude.json"),
    ClientKind.CURSOR: ("home", ".cursor/mcp.json"),
    ClientKind.WINDSURF: ("home", ".codeium/windsurf/mcp_config.json"),
    ClientKind.VSCODE: ("app_support", "Code/User/mcp.json"),
    ClientKind.VSCODE_INSIDERS: ("app_support", "Code - Insiders/User/mcp.json"),
    ClientKind.ZED: ("home", ".config/zed/settings.json"),
    ClientKind.CONTINUE: ("home", ".continue/config.json"),
    ClientKind.CODY: ("app_support", f"{_VSCODE_STORAGE}/sourcegraph.cody-ai/cody_mcp_settings.json"),
    ClientKind.CLINE: ("app_support", f"{_VSCODE_STORAGE}/saoudrizwan.claude-dev/settings/cline_mcp_settings.json"),
    ClientKind.ROO_CODE: (
        "app_support",
        f"{_VSCODE_STORAGE}/rooveterinaryinc.roo-cline/settings/cline_mcp_settings.json",
    ),
    ClientKind.KILO_CODE: ("app_support", f"{_VSCODE_STORAGE}/kilocode.kilocode/mcp_settings.json"),
    ClientKind.AMP: ("home", ".amp/mcp.json"),
    ClientKind.AUGMENT: ("app_support", "Code/User/settings.json"),
    ClientKind.ANTIGRAVITY: ("home", ".gemini/antigravity/mcp_config.json"),
    ClientKind.JETBRAINS: ("home", ".junie/mcp/mcp.json"),
    ClientKind.GEMINI_CLI: ("home", ".gemini/settings.json"),
    ClientKind.QWEN_CODER: ("home", ".qwen-coder/mcp.json"),
    ClientKind.OPENCODE: ("home", ".opencode/mcp.json"),
    ClientKind.OPENAI_CODEX: ("home", ".codex/mcp.json"),
    ClientKind.KIRO: ("home", ".kiro/settings/mcp.json"),
    ClientKind.TRAE: ("home", ".trae/mcp.json"),
    ClientKind.LM_STUDIO: ("app_support", "LM Studio/mcp.json"),
    ClientKind.VISUAL_STUDIO: ("config", "Microsoft/VisualStudio/mcp.json"),
    ClientKind.CRUSH: ("home", ".crush/mcp.json"),
    ClientKind.BOLTAI: ("app_support", "BoltAI/mcp.json"),
    ClientKind.ROVO_DEV: ("home", ".rovo/mcp.json"),
    ClientKind.ZENCODER: ("home", ".zencoder/mcp.json"),
    ClientKind.QODO_GEN: ("app_support", f"{_VSCODE_STORAGE}/qodo-ai.qodo-gen/mcp_settings.json"),
    ClientKind.PERPLEXITY: ("app_support", "Perplexity/mcp.json"),
    ClientKind.FACTORY: ("home", ".factory/mcp.json"),
    ClientKind.EMDASH: ("home", ".emdash/mcp.json"),
    ClientKind.AMAZON_Q: ("home", ".aws/amazonq/mcp.json"),
    ClientKind.COPILOT_AGENT: ("home", ".github/copilot/mcp.json"),
    ClientKind.COPILOT_CLI: ("home", ".github/copilot-cli/mcp.json"),
    ClientKind.SMITHERY: ("home", ".smithery/mcp.json"),
}

_OS_OVERRIDES: Dict[Tuple[ClientKind, HostOS], _Location] = {
    (ClientKind.ZED, HostOS.WINDOWS): ("config", "Zed/settings.json"),
}

# Kinds that only exist on the listed hosts.
_OS_ONLY: Dict[ClientKind, frozenset] = {
    ClientKind.VISUAL_STUDIO: frozenset({HostOS.WINDOWS}),
}


def resolve_config_path(kind: ClientKind, host: HostOS, dirs: BaseDirectories) -> Path | None:
    """Return the default config file for ``kind`` on ``host``, or ``None`` when it has none."""

    allowed = _OS_ONLY.get(kind)
    if allowed is not None and host not in allowed:
        return None
    location = _OS_OVERRIDES.get((kind, host)) or _LOCATIONS.get(kind)
    if location is None:
        return None
    base, relative = location
    root: Path = getattr(dirs, base)
    return root.joinpath(*relative.split("/"))


def require_config_path(kind: ClientKind, host: HostOS, dirs: BaseDirectories) -> Path:
    path = resolve_config_path(kind, host, dirs)
    if path is None:
        raise PathUnresolvedError(f"No default config location for {kind.display_name} on {host.value}")
    return path


def detect_installed(host: HostOS, dirs: BaseDirectories) -> List[Tuple[ClientKind, Path]]:
    """List clients whose config file, or the directory that would hold it, exists."""

    found: List[Tuple[ClientKind, Path]] = []
    for kind in ClientKind:
        path = resolve_config_path(kind, host, dirs)
        if path is None:
            continue
        if path.parent.exists() or path.is_file():
            found.append((kind, path))
    return found


__all__ = [
    "BaseDirectories",
    "HostOS",
    "PathUnresolvedError",
    "current_os",
    "detect_installed",
    "require_config_path",
    "resolve_config_path",
]
