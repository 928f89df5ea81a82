"""Domain primitives for MCP client applications."""

from .value_objects import ClientInstance, ClientKind, ConfigBackup, DetectedClient
from .paths import BaseDirectories, HostOS, PathUnresolvedError, current_os, detect_installed, resolve_config_path

__all__ = [
    "BaseDirectories",
    "ClientInstance",
    "ClientKind",
    "ConfigBackup",
    "DetectedClient",
    "HostOS",
    "PathUnresolvedError",
    "current_os",
    "detect_installed",
    "resolve_config_path",
]
