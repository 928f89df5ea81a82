"""Value objects describing MCP client applications and tracked instances."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from mcphub.domain.timestamps import format_timestamp, parse_optional_timestamp, parse_timestamp, utcnow


class ClientKind(str, Enum):
    CLAUDE_DESKTOP = "claude-desktop"
    CLAUDE_CODE = "claude-code"
    CURSOR = "cursor"
    WINDSURF = "windsurf"
    VSCODE = "vscode"
    VSCODE_INSIDERS = "vscode-insiders"
    ZED = "zed"
    CONTINUE = "continue"
    CODY = "cody"
    CLINE = "cline"
    ROO_CODE = "roo-code"
    KILO_CODE = "kilo-code"
    AMP = "amp"
    AUGMENT = "augment"
    ANTIGRAVITY = "antigravity"
    JETBRAINS = "jetbrains"
    GEMINI_CLI = "gemini-cli"
    QWEN_CODER = "qwen-coder"
    OPENCODE = "opencode"
    OPENAI_CODEX = "openai-codex"
    KIRO = "kiro"
    TRAE = "trae"
    LM_STUDIO = "lm-studio"
    VISUAL_STUDIO = "visual-studio"
    CRUSH = "crush"
    BOLTAI = "boltai"
    ROVO_DEV = "rovo-dev"
    ZENCODER = "zencoder"
    QODO_GEN = "qodo-gen"
    PERPLEXITY = "perplexity"
    FACTORY = "factory"
    EMDASH = "emdash"
    AMAZON_Q = "amazon-q"
    WARP = "warp"
    COPILOT_AGENT = "copilot-agent"
    COPILOT_CLI = "copilot-cli"
    SMITHERY = "smithery"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | None) -> "ClientKind":
        """Map a stored kind string to a member; unknown values become ``CUSTOM``."""

        try:
            return cls(value) if value else cls.CUSTOM
        except ValueError:
            return cls.CUSTOM

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES: Dict[ClientKind, str] = {
    ClientKind.CLAUDE_DESKTOP: "Claude Desktop",
    ClientKind.CLAUDE_CODE: "Claude Code",
    ClientKind.CURSOR: "Cursor",
    ClientKind.WINDSURF: "Windsurf",
    ClientKind.VSCODE: "VS Code",
    ClientKind.VSCODE_INSIDERS: "VS Code Insiders",
    ClientKind.ZED: "Zed",
    ClientKind.CONTINUE: "Continue",
    ClientKind.CODY: "Sourcegraph Cody",
    ClientKind.CLINE: "Cline",
    ClientKind.ROO_CODE: "Roo Code",
    ClientKind.KILO_CODE: "Kilo Code",
    ClientKind.AMP: "Amp",
    ClientKind.AUGMENT: "Augment Code",
    ClientKind.ANTIGRAVITY: "Google Antigravity",
    ClientKind.JETBRAINS: "JetBrains AI",
    ClientKind.GEMINI_CLI: "Gemini CLI",
    ClientKind.QWEN_CODER: "Qwen Coder",
    ClientKind.OPENCODE: "Opencode",
    ClientKind.OPENAI_CODEX: "OpenAI Codex",
    ClientKind.KIRO: "Kiro",
    ClientKind.TRAE: "Trae",
    ClientKind.LM_STUDIO: "LM Studio",
    ClientKind.VISUAL_STUDIO: "Visual Studio 2022",
    ClientKind.CRUSH: "Crush",
    ClientKind.BOLTAI: "BoltAI",
    ClientKind.ROVO_DEV: "Rovo Dev CLI",
    ClientKind.ZENCODER: "Zencoder",
    ClientKind.QODO_GEN: "Qodo Gen",
    ClientKind.PERPLEXITY: "Perplexity Desktop",
    ClientKind.FACTORY: "Factory",
    ClientKind.EMDASH: "Emdash",
    ClientKind.AMAZON_Q: "Amazon Q Developer",
    ClientKind.WARP: "Warp",
    ClientKind.COPILOT_AGENT: "Copilot Coding Agent",
    ClientKind.COPILOT_CLI: "Copilot CLI",
    ClientKind.SMITHERY: "Smithery",
    ClientKind.CUSTOM: "Custom",
}


@dataclass(frozen=True)
class ClientInstance:
    """A named profile pointing at one client's config file."""

    id: str
    name: str
    client_kind: ClientKind
    config_path: str
    is_default: bool = False
    last_synced: datetime | None = None
    last_modified: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    enabled_servers: List[str] = field(default_factory=list)

    @classmethod
    def new(cls, name: str, client_kind: ClientKind, config_path: str, *, is_default: bool = False) -> "ClientInstance":
        return cls(
            id=str(uuid.uuid4()),
            name=name,
            client_kind=client_kind,
            config_path=config_path,
            is_default=is_default,
        )

    def updated(self, **changes: Any) -> "ClientInstance":
        changes.pop("id", None)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "clientType": self.client_kind.value,
            "configPath": self.config_path,
            "enabledServers": list(self.enabled_servers),
            "isDefault": self.is_default,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.last_synced is not None:
            payload["lastSynced"] = format_timestamp(self.last_synced)
        if self.last_modified is not None:
            payload["lastModified"] = format_timestamp(self.last_modified)
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientInstance":
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            name=str(data["name"]),
            client_kind=ClientKind.parse(data.get("clientType")),
            config_path=str(data.get("configPath") or ""),
            is_default=bool(data.get("isDefault", False)),
            last_synced=parse_optional_timestamp(data.get("lastSynced")),
            last_modified=parse_optional_timestamp(data.get("lastModified")),
            created_at=parse_timestamp(data.get("createdAt")),
            enabled_servers=[str(item) for item in data.get("enabledServers") or []],
        )


@dataclass(frozen=True)
class ConfigBackup:
    id: str
    instance_id: str
    backup_path: str
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(cls, instance_id: str, backup_path: str) -> "ConfigBackup":
        return cls(id=str(uuid.uuid4()), instance_id=instance_id, backup_path=backup_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "instanceId": self.instance_id,
            "backupPath": self.backup_path,
            "createdAt": format_timestamp(self.created_at),
        }


@dataclass(frozen=True)
class DetectedClient:
    client_kind: ClientKind
    config_path: str
    has_config: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientType": self.client_kind.value,
            "displayName": self.client_kind.display_name,
            "configPath": self.config_path,
            "hasConfig": self.has_config,
        }


__all__ = ["ClientInstance", "ClientKind", "ConfigBackup", "DetectedClient"]
