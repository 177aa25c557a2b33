"""Stream a library tree and its metadata blob into a ZIP backup."""
from __future__ import annotations

import json
import os
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from core.errors import StorageUnavailable

from .errors import ArchiveWriteFailed
from .logs import BackupLogger, NullBackupLogger
from .progress import ProgressCallback, ProgressEmitter
from .split import MAX_PARTS, parse_part_name, split_archive
from .types import DATABASE_DIRNAME, DATABASE_ENTRY, MANIFEST_VERSION, BackupManifest, TreeStats

DEFAULT_CHUNK_BYTES = 1024 * 1024
MANIFEST_SUFFIX = ".manifest.json"

_Entry = Tuple[Path, str, int]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_root(library_root: Path) -> Path:
    root = Path(library_root)
    if not root.is_dir() or not os.access(root, os.R_OK | os.X_OK):
        raise StorageUnavailable(f"Library folder is not accessible: {root}")
    return root


def _is_own_output(path: Path, destination: Path) -> bool:
    if path.parent != destination.parent:
        return False
    if path.name == destination.name or path.name == destination.name + MANIFEST_SUFFIX:
        return True
    parsed = parse_part_name(path.name)
    return parsed is not None and parsed[0] == destination.name


def collect_files(library_root: Path, destination: Optional[Path] = None) -> List[_Entry]:
    """Return ``(path, archive name, size)`` for every file, sorted by archive name.

    The top-level ``_database`` folder is skipped because that name is
    reserved for the metadata entry. The backup's own output files are
    skipped when the destination sits inside the library.
    """

    root = Path(library_root).absolute()
    target = Path(destination).absolute() if destination is not None else None
    entries: List[_Entry] = []
    for current, dirnames, filenames in os.walk(root):
        current_path = Path(current)
        if current_path == root and DATABASE_DIRNAME in dirnames:
            dirnames.remove(DATABASE_DIRNAME)
        dirnames.sort()
        for filename in filenames:
            path = current_path / filename
            if target is not None and _is_own_output(path, target):
                continue
            try:
                size = path.stat().st_size
            except OSError as exc:
                raise StorageUnavailable(f"Cannot read {path}: {exc}") from exc
            entries.append((path, path.relative_to(root).as_posix(), size))
    entries.sort(key=lambda entry: entry[1])
    return entries


def clear_previous_output(destination: Path) -> List[Path]:
    """Delete the output of an earlier backup to *destination* and return the removed paths.

    The unsplit archive and its parts must never coexist, otherwise a restore
    from one part could pick up stale siblings.
    """

    target = Path(destination)
    if not target.parent.is_dir():
        return []
    removed: List[Path] = []
    for sibling in sorted(target.parent.iterdir()):
        if sibling.is_file() and _is_own_output(sibling, target):
            sibling.unlink()
            removed.append(sibling)
    return removed


def measure_tree(library_root: Path, destination: Optional[Path] = None) -> TreeStats:
    entries = collect_files(_check_root(library_root), destination)
    return TreeStats(total_bytes=sum(size for _, _, size in entries), files_count=len(entries))


def _copy_entry(
    archive: zipfile.ZipFile,
    source: Path,
    arcname: str,
    emitter: ProgressEmitter,
    chunk_bytes: int,
) -> None:
    info = zipfile.ZipInfo.from_file(source, arcname)
    info.compress_type = zipfile.ZIP_DEFLATED
    with source.open("rb") as src, archive.open(info, "w") as dst:
        for chunk in iter(lambda: src.read(chunk_bytes), b""):
            dst.write(chunk)
            emitter.advance(len(chunk))


def write_manifest(manifest: BackupManifest, path: Path) -> Path:
    with Path(path).open("w", encoding="utf-8") as handle:
        json.dump(manifest.to_dict(), handle, indent=2, sort_keys=True)
    return Path(path)


def manifest_path_for(destination: Path) -> Path:
    return Path(destination).with_name(Path(destination).name + MANIFEST_SUFFIX)


def write_archive(
    library_root: Path,
    metadata_blob: Union[str, bytes],
    destination: Path,
    *,
    part_count: int = 1,
    progress_callback: Optional[ProgressCallback] = None,
    logger: Optional[BackupLogger] = None,
    chunk_bytes: int = DEFAULT_CHUNK_BYTES,
    progress_interval_s: float = 0.25,
    write_manifest_file: bool = True,
) -> BackupManifest:
    """Archive *library_root* plus *metadata_blob* into *destination*.

    The metadata blob is stored first as ``_database/arc_database.json``,
    followed by every library file in sorted order. With ``part_count > 1``
    the sealed archive is split into ``<destination>.partNN`` files and the
    unsplit file is removed.
    """

    if isinstance(part_count, bool) or not isinstance(part_count, int) or not 1 <= part_count <= MAX_PARTS:
        raise ValueError(f"part_count must be an integer between 1 and {MAX_PARTS}")
    root = _check_root(Path(library_root)).absolute()
    target = Path(destination).absolute()
    log = logger or NullBackupLogger()
    blob = metadata_blob.encode("utf-8") if isinstance(metadata_blob, str) else bytes(metadata_blob)

    entries = collect_files(root, target)
    stats = TreeStats(total_bytes=sum(size for _, _, size in entries), files_count=len(entries))
    log.event(
        event="backup_start",
        phase="create",
        ok=True,
        library=str(root),
        destination=str(target),
        files=stats.files_count,
        bytes=stats.total_bytes,
        parts=part_count,
    )

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log.event(event="backup_failed", phase="create", ok=False, error=str(exc))
        raise StorageUnavailable(f"Backup folder is not writable: {target.parent}") from exc

    emitter = ProgressEmitter(progress_callback, stats.total_bytes, interval_s=progress_interval_s)
    emitter.start()
    try:
        removed = clear_previous_output(target)
        if removed:
            log.info("backup_cleared_previous", files=[path.name for path in removed])
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED, allowZip64=True) as archive:
            archive.writestr(DATABASE_ENTRY, blob)
            for source, arcname, _ in entries:
                _copy_entry(archive, source, arcname, emitter, chunk_bytes)
        archive_size = target.stat().st_size
        if part_count > 1:
            part_paths = split_archive(target, part_count)
            log.info("backup_split", parts=[path.name for path in part_paths])
        else:
            part_paths = [target]
        manifest = BackupManifest(
            version=MANIFEST_VERSION,
            date=_utcnow(),
            source_library_path=str(root),
            total_size=stats.total_bytes,
            files_count=stats.files_count,
            part_count=part_count,
            archive_name=target.name,
            part_file_names=[path.name for path in part_paths],
            archive_size=archive_size,
        )
        if write_manifest_file:
            write_manifest(manifest, manifest_path_for(target))
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        emitter.abort()
        log.event(event="backup_failed", phase="create", ok=False, destination=str(target), error=str(exc))
        raise ArchiveWriteFailed(f"Backup could not be written to {target}: {exc}") from exc

    emitter.complete()
    log.event(
        event="backup_complete",
        phase="create",
        ok=True,
        destination=str(target),
        size=archive_size,
        parts=part_count,
    )
    return manifest


__all__ = [
    "DEFAULT_CHUNK_BYTES",
    "clear_previous_output",
    "collect_files",
    "manifest_path_for",
    "measure_tree",
    "write_archive",
    "write_manifest",
]
