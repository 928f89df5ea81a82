"""Timestamped byte-for-byte backups of client config files."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, List

from mcphub.domain.timestamps import utcnow
from mcphub.utils.logging import get_logger

logger = get_logger(__name__)

BACKUP_SUFFIX = ".backup"


class BackupError(RuntimeError):
    """Base error for backup failures."""


class BackupSourceMissingError(BackupError):
    """Raised when the file to back up is absent or not a regular file."""


class BackupIOError(BackupError):
    """Raised when the backup copy cannot be written."""


def create_backup(path: Path, backup_dir: Path) -> Path:
    """Copy ``path`` into ``backup_dir`` as ``<name>_<UTC stamp>.backup`` and return the copy."""

    if not path.is_file():
        raise BackupSourceMissingError(f"Config file does not exist: {path}")
    stamp = utcnow().strftime("%Y%m%d_%H%M%S")
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        target = _unique_target(backup_dir, f"{path.name}_{stamp}")
        shutil.copyfile(path, target)
    except OSError as exc:
        raise BackupIOError(f"Failed to back up {path}: {exc}") from exc
    logger.info("backup.created", source=str(path), backup=str(target))
    return target


def remove_backup_files(paths: Iterable[str]) -> List[str]:
    """Delete expired backup copies and return the paths no longer on disk.

    A copy that cannot be removed is logged and left out of the result.
    """

    gone: List[str] = []
    for raw in paths:
        try:
            Path(raw).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("backup.remove_failed", backup=raw, error=str(exc))
            continue
        gone.append(raw)
    return gone


def _unique_target(backup_dir: Path, stem: str) -> Path:
    candidate = backup_dir / f"{stem}{BACKUP_SUFFIX}"
    counter = 1
    while candidate.exists():
        candidate = backup_dir / f"{stem}_{counter}{BACKUP_SUFFIX}"
        counter += 1
    return candidate


__all__ = [
    "BACKUP_SUFFIX",
    "BackupError",
    "BackupIOError",
    "BackupSourceMissingError",
    "create_backup",
    "remove_backup_files",
]
