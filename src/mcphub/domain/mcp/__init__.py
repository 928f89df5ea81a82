"""Domain primitives for MCP server definitions and their on-disk format."""

from .value_objects import HealthStatus, Server, ServerHealth, ServerSource, SourceKind, sanitize_name
from .codec import MERGE_WRITE_CLIENTS, ServerEntry

__all__ = [
    "HealthStatus",
    "MERGE_WRITE_CLIENTS",
    "Server",
    "ServerEntry",
    "ServerHealth",
    "ServerSource",
    "SourceKind",
    "sanitize_name",
]
