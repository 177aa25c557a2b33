from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


IMAGE_EXTENSIONS = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".png",
        ".webp",
        ".gif",
        ".bmp",
        ".tif",
        ".tiff",
        ".heic",
        ".heif",
    }
)

VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4",
        ".webm",
        ".ogv",
        ".m4v",
        ".mov",
        ".avi",
        ".mkv",
        ".mpeg",
        ".mpg",
        ".m2v",
        ".3gp",
        ".ts",
        ".mts",
        ".flv",
        ".wmv",
    }
)


def media_kind_for(path: str | os.PathLike[str]) -> Optional[MediaKind]:
    suffix = Path(path).suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if suffix in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return None


def is_supported(path: str | os.PathLike[str]) -> bool:
    return media_kind_for(path) is not None


__all__ = ["IMAGE_EXTENSIONS", "MediaKind", "VIDEO_EXTENSIONS", "is_supported", "media_kind_for"]
