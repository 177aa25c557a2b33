"""Error hierarchy for backup operations."""
from __future__ import annotations

from core.errors import MediaStoreError


class BackupError(MediaStoreError):
    """Base exception for backup related failures."""

    code = "backup_failed"


class ArchiveWriteFailed(BackupError):
    """Writing or splitting the archive failed. Partial output may remain."""

    code = "archive_write_failed"
    hint = "Check free space on the backup destination and try again."


class ArchiveCorrupt(BackupError):
    """The archive or its parts cannot be reassembled or decoded."""

    code = "archive_corrupt"
    hint = "Re-select the archive and make sure every part is present."


__all__ = ["ArchiveCorrupt", "ArchiveWriteFailed", "BackupError"]
