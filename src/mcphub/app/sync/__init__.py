"""Projection of the registry into client config files."""

from .backup import BackupError, create_backup
from .projector import ConfigProjector, SyncResult

__all__ = ["BackupError", "ConfigProjector", "SyncResult", "create_backup"]
