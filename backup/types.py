"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

MANIFEST_VERSION = "1.0"
DATABASE_ENTRY = "_database/arc_database.json"
DATABASE_DIRNAME = "_database"


@dataclass(slots=True, frozen=True)
class BackupProgress:
    percent: int
    processed_bytes: int
    total_bytes: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "percent": self.percent,
            "processed_bytes": self.processed_bytes,
            "total_bytes": self.total_bytes,
        }


@dataclass(slots=True, frozen=True)
class TreeStats:
    total_bytes: int
    files_count: int


@dataclass(slots=True, frozen=True)
class BackupManifest:
    """Description of a finished backup. Serialised with camelCase keys."""

    version: str
    date: str
    source_library_path: str
    total_size: int
    files_count: int
    part_count: int
    archive_name: str
    part_file_names: List[str] = field(default_factory=list)
    archive_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "date": self.date,
            "sourceLibraryPath": self.source_library_path,
            "totalSize": self.total_size,
            "filesCount": self.files_count,
            "partCount": self.part_count,
            "archiveName": self.archive_name,
            "partFileNames": list(self.part_file_names),
            "archiveSize": self.archive_size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackupManifest":
        part_names = data.get("partFileNames") or []
        if not isinstance(part_names, list):
            raise ValueError("partFileNames must be a list")
        return cls(
            version=str(data.get("version") or MANIFEST_VERSION),
            date=str(data.get("date") or ""),
            source_library_path=str(data.get("sourceLibraryPath") or ""),
            total_size=int(data.get("totalSize") or 0),
            files_count=int(data.get("filesCount") or 0),
            part_count=int(data.get("partCount") or 1),
            archive_name=str(data.get("archiveName") or ""),
            part_file_names=[str(name) for name in part_names],
            archive_size=int(data.get("archiveSize") or 0),
        )


@dataclass(slots=True)
class RestoreResult:
    metadata_blob: Optional[str]
    target_dir: Path
    restored_files: int
    restored_bytes: int
    parts_used: List[Path] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata_blob": self.metadata_blob,
            "target_dir": str(self.target_dir),
            "restored_files": self.restored_files,
            "restored_bytes": self.restored_bytes,
            "parts_used": [str(path) for path in self.parts_used],
        }


__all__ = [
    "BackupManifest",
    "BackupProgress",
    "DATABASE_DIRNAME",
    "DATABASE_ENTRY",
    "MANIFEST_VERSION",
    "RestoreResult",
    "TreeStats",
]
