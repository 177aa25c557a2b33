from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from core.errors import StorageUnavailable
from core.paths import CACHE_DIRNAME, ensure_writable_dir, get_thumbnail_path, is_reserved_name

from .formats import MediaKind, media_kind_for
from .types import LibraryUsage, MediaItem, RelocationProgress

LOGGER = logging.getLogger("arcstore.library.inventory")

RelocationCallback = Callable[[RelocationProgress], None]


def _require_dir(path: Path) -> Path:
    root = Path(path)
    if not root.is_dir():
        raise StorageUnavailable(f"Library folder is not available: {root}")
    return root


def scan_media_files(directory: Path) -> List[Path]:
    """Return supported media files below *directory*.

    Reserved folders (``_cache``, dot folders) are skipped. Unreadable
    sub-folders are logged and skipped.
    """

    root = _require_dir(directory)
    found: List[Path] = []

    def _on_error(exc: OSError) -> None:
        LOGGER.warning("skipping unreadable folder %s: %s", exc.filename, exc.strerror)

    for current, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(name for name in dirnames if not is_reserved_name(name))
        for filename in sorted(filenames):
            if media_kind_for(filename) is not None:
                found.append(Path(current) / filename)
    return found


def iter_files(root: Path) -> Iterator[Tuple[Path, int]]:
    for current, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(current) / filename
            try:
                size = path.stat().st_size
            except OSError:
                LOGGER.debug("cannot stat %s", path, exc_info=True)
                continue
            yield path, size


def directory_usage(library_root: Path) -> LibraryUsage:
    root = _require_dir(library_root)
    usage = LibraryUsage()
    for path, size in iter_files(root):
        usage.total_bytes += size
        relative = path.relative_to(root)
        if relative.parts and relative.parts[0] == CACHE_DIRNAME:
            usage.cache_bytes += size
            continue
        kind = media_kind_for(path)
        if kind is MediaKind.IMAGE:
            usage.image_bytes += size
            usage.image_count += 1
        elif kind is MediaKind.VIDEO:
            usage.video_bytes += size
            usage.video_count += 1
        else:
            usage.other_bytes += size
    return usage


def file_info(path: Path, item_id: Optional[str] = None) -> MediaItem:
    target = Path(path)
    if not target.is_file():
        raise FileNotFoundError(f"File not found: {target}")
    return MediaItem.from_path(target, item_id)


def _stem_in_use(library_root: Path, stem: str) -> bool:
    if not Path(library_root).is_dir():
        return False
    return any(path.stem == stem for path in scan_media_files(library_root))


def delete_media(path: Path, library_root: Optional[Path] = None) -> bool:
    """Delete *path* and its cached thumbnail. Missing files count as deleted.

    Thumbnails are keyed by file stem, so the thumbnail stays while another
    library item still has the same stem.
    """

    target = Path(path)
    try:
        target.unlink(missing_ok=True)
    except OSError as exc:
        raise StorageUnavailable(f"Cannot delete {target}: {exc}") from exc
    if library_root is not None:
        thumb = get_thumbnail_path(library_root, target)
        if _stem_in_use(library_root, target.stem):
            LOGGER.info("keeping thumbnail %s, still used by another item", thumb.name)
            return True
        try:
            thumb.unlink(missing_ok=True)
        except OSError:
            LOGGER.warning("could not remove thumbnail %s", thumb, exc_info=True)
    return True


def relocate_library(
    old_root: Path,
    new_root: Path,
    *,
    progress_callback: Optional[RelocationCallback] = None,
) -> int:
    """Copy the whole library tree to *new_root*. The old tree is left in place."""

    source = _require_dir(old_root).resolve()
    destination = Path(new_root).resolve()
    if destination == source or source in destination.parents:
        raise ValueError("new library folder must not be inside the current one")
    if not ensure_writable_dir(destination):
        raise StorageUnavailable(f"Library folder is not writable: {destination}")

    files = [path for path, _ in iter_files(source)]
    total = len(files)
    last_percent = -1
    for index, path in enumerate(files, start=1):
        target = destination / path.relative_to(source)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot copy {path} to {target}: {exc}") from exc
        percent = (index * 100) // total
        if progress_callback is not None and percent != last_percent:
            last_percent = percent
            progress_callback(RelocationProgress(percent=percent, copied_files=index, total_files=total))
    if total == 0 and progress_callback is not None:
        progress_callback(RelocationProgress(percent=100, copied_files=0, total_files=0))
    LOGGER.info("relocated library %s -> %s (%d files)", source, destination, total)
    return total


__all__ = [
    "delete_media",
    "directory_usage",
    "file_info",
    "iter_files",
    "relocate_library",
    "scan_media_files",
]
