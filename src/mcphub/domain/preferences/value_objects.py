"""Application and discovery preferences stored under ``app_settings``."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict

APP_SETTINGS_KEY = "app_settings"
DEFAULT_HTTP_PORT = 24368
DEFAULT_RETENTION_DAYS = 30


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


@dataclass(frozen=True)
class DiscoverySettings:
    mcp_directory_enabled: bool = False
    http_server_enabled: bool = False
    http_server_port: int = DEFAULT_HTTP_PORT

    def __post_init__(self) -> None:
        if not 0 <= int(self.http_server_port) <= 65535:
            raise ValueError(f"HTTP server port must be within 0..65535, got {self.http_server_port}")
        object.__setattr__(self, "http_server_port", int(self.http_server_port))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mcpDirectoryEnabled": self.mcp_directory_enabled,
            "httpServerEnabled": self.http_server_enabled,
            "httpServerPort": self.http_server_port,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "DiscoverySettings":
        data = data or {}
        return cls(
            mcp_directory_enabled=bool(data.get("mcpDirectoryEnabled", False)),
            http_server_enabled=bool(data.get("httpServerEnabled", False)),
            http_server_port=int(data.get("httpServerPort", DEFAULT_HTTP_PORT)),
        )


@dataclass(frozen=True)
class AppSettings:
    theme: Theme = Theme.SYSTEM
    auto_start: bool = False
    create_backups: bool = True
    backup_retention_days: int = DEFAULT_RETENTION_DAYS
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)

    def with_discovery(self, discovery: DiscoverySettings) -> "AppSettings":
        return replace(self, discovery=discovery)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theme": self.theme.value,
            "autoStart": self.auto_start,
            "createBackups": self.create_backups,
            "backupRetentionDays": self.backup_retention_days,
            "discovery": self.discovery.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "AppSettings":
        data = data or {}
        try:
            theme = Theme(data.get("theme", Theme.SYSTEM.value))
        except ValueError:
            theme = Theme.SYSTEM
        return cls(
            theme=theme,
            auto_start=bool(data.get("autoStart", False)),
            create_backups=bool(data.get("createBackups", True)),
            backup_retention_days=int(data.get("backupRetentionDays", DEFAULT_RETENTION_DAYS)),
            discovery=DiscoverySettings.from_dict(data.get("discovery")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | None) -> "AppSettings":
        """Decode a stored blob; missing input yields defaults."""

        if not text:
            return cls()
        payload = json.loads(text)
        if not isinstance(payload, dict):
            raise ValueError("app_settings must be a JSON object")
        return cls.from_dict(payload)


__all__ = [
    "APP_SETTINGS_KEY",
    "AppSettings",
    "DEFAULT_HTTP_PORT",
    "DEFAULT_RETENTION_DAYS",
    "DiscoverySettings",
    "Theme",
]
