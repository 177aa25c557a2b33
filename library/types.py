from __future__ import annotations

import datetime as dt
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .formats import MediaKind, media_kind_for


def _isoformat(timestamp: float) -> str:
    return dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class MediaItem:
    """A file inside the library as the caller sees it."""

    item_id: str
    path: Path
    name: str
    size_bytes: int
    created_utc: str
    modified_utc: str
    kind: Optional[MediaKind]

    @classmethod
    def from_path(cls, path: Path, item_id: Optional[str] = None) -> "MediaItem":
        stat = os.stat(path)
        created = getattr(stat, "st_birthtime", None) or stat.st_ctime
        return cls(
            item_id=item_id or str(path),
            path=Path(path),
            name=Path(path).name,
            size_bytes=int(stat.st_size),
            created_utc=_isoformat(created),
            modified_utc=_isoformat(stat.st_mtime),
            kind=media_kind_for(path),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item_id,
            "path": str(self.path),
            "name": self.name,
            "size_bytes": self.size_bytes,
            "created_utc": self.created_utc,
            "modified_utc": self.modified_utc,
            "kind": self.kind.value if self.kind else None,
        }


@dataclass(slots=True)
class LibraryUsage:
    total_bytes: int = 0
    image_bytes: int = 0
    video_bytes: int = 0
    cache_bytes: int = 0
    other_bytes: int = 0
    image_count: int = 0
    video_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_bytes": self.total_bytes,
            "image_bytes": self.image_bytes,
            "video_bytes": self.video_bytes,
            "cache_bytes": self.cache_bytes,
            "other_bytes": self.other_bytes,
            "image_count": self.image_count,
            "video_count": self.video_count,
        }


@dataclass(slots=True, frozen=True)
class RelocationProgress:
    percent: int
    copied_files: int
    total_files: int


__all__ = ["LibraryUsage", "MediaItem", "RelocationProgress"]
