"""Portable backup archives of a media library and its metadata blob."""
from __future__ import annotations

from .create import measure_tree, write_archive
from .errors import ArchiveCorrupt, ArchiveWriteFailed, BackupError
from .logs import BackupLogger
from .restore import restore_archive
from .split import merge_parts, split_archive
from .types import BackupManifest, BackupProgress, RestoreResult
from .verify import verify_archive

__all__ = [
    "ArchiveCorrupt",
    "ArchiveWriteFailed",
    "BackupError",
    "BackupLogger",
    "BackupManifest",
    "BackupProgress",
    "RestoreResult",
    "measure_tree",
    "merge_parts",
    "restore_archive",
    "split_archive",
    "verify_archive",
    "write_archive",
]
