"""Library layout: ingestion into the date tree and inventory helpers."""

from .formats import MediaKind, media_kind_for
from .inventory import delete_media, directory_usage, file_info, relocate_library, scan_media_files
from .organizer import move_into_library, place, resolve_free_name, save_bytes
from .types import LibraryUsage, MediaItem, RelocationProgress

__all__ = [
    "LibraryUsage",
    "MediaItem",
    "MediaKind",
    "RelocationProgress",
    "delete_media",
    "directory_usage",
    "file_info",
    "media_kind_for",
    "move_into_library",
    "place",
    "relocate_library",
    "resolve_free_name",
    "save_bytes",
    "scan_media_files",
]
