"""Reassemble, validate and extract backup archives."""
from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import time
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from core.errors import StorageUnavailable

from .errors import ArchiveCorrupt
from .logs import BackupLogger, NullBackupLogger
from .progress import ProgressCallback, ProgressEmitter
from .split import check_sequence, discover_parts, merge_parts, parse_part_name, part_name
from .types import DATABASE_DIRNAME, DATABASE_ENTRY, BackupManifest, RestoreResult

LOGGER = logging.getLogger("arcstore.backup.restore")

ArchiveSource = Union[str, os.PathLike, Sequence[Union[str, os.PathLike]]]

_COPY_CHUNK = 1024 * 1024
_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, ValueError, NotImplementedError, RuntimeError)


def _parts_from_manifest(manifest_path: Path) -> List[Path]:
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
        manifest = BackupManifest.from_dict(data)
    except FileNotFoundError as exc:
        raise ArchiveCorrupt(f"Backup manifest not found: {manifest_path}") from exc
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        raise ArchiveCorrupt(f"Backup manifest unreadable: {manifest_path}") from exc
    names = manifest.part_file_names or [manifest.archive_name]
    if len(names) != max(1, manifest.part_count):
        raise ArchiveCorrupt("Backup manifest lists the wrong number of parts")
    return _ordered([manifest_path.parent / name for name in names])


def _ordered(paths: List[Path]) -> List[Path]:
    parsed = [parse_part_name(path.name) for path in paths]
    if len(paths) > 1 and all(info is not None for info in parsed):
        check_sequence([info[1] for info in parsed if info is not None])
    return paths


def resolve_sources(source: ArchiveSource) -> List[Path]:
    """Return the ordered list of files that make up one archive.

    *source* may be a single archive, any one of its ``.partNN`` files, the
    manifest JSON written beside it, or an explicit sequence of parts.
    """

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        if path.suffix.lower() == ".json":
            return _parts_from_manifest(path)
        if parse_part_name(path.name) is not None:
            return discover_parts(path)
        first_part = path.with_name(part_name(path.name, 1))
        if not path.exists() and first_part.is_file():
            return discover_parts(first_part)
        if not path.is_file():
            raise ArchiveCorrupt(f"Archive not found: {path}")
        return [path]
    paths = [Path(item) for item in source]
    if not paths:
        raise ArchiveCorrupt("No archive parts were given")
    return _ordered(paths)


@contextlib.contextmanager
def assembled_archive(parts: Sequence[Path], *, work_dir: Optional[Path] = None) -> Iterator[Path]:
    """Yield one file holding every part concatenated in order."""

    if len(parts) == 1:
        yield Path(parts[0])
        return
    try:
        handle, temp_name = tempfile.mkstemp(prefix="arcstore-restore-", suffix=".zip", dir=work_dir)
        os.close(handle)
    except OSError as exc:
        raise StorageUnavailable(f"Cannot create a temporary file for merging parts: {exc}") from exc
    merged = Path(temp_name)
    try:
        try:
            merge_parts(parts, merged)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot merge archive parts: {exc}") from exc
        yield merged
    finally:
        merged.unlink(missing_ok=True)


def open_validated(path: Path) -> zipfile.ZipFile:
    """Open *path* and check every entry's CRC before anything is extracted."""

    try:
        archive = zipfile.ZipFile(path, "r")
    except FileNotFoundError as exc:
        raise ArchiveCorrupt(f"Archive not found: {path}") from exc
    except (OSError, *_READ_ERRORS) as exc:
        raise ArchiveCorrupt(f"Archive index is unreadable: {exc}") from exc
    try:
        bad_entry = archive.testzip()
    except (OSError, *_READ_ERRORS) as exc:
        archive.close()
        raise ArchiveCorrupt(f"Archive data is unreadable: {exc}") from exc
    if bad_entry is not None:
        archive.close()
        raise ArchiveCorrupt(f"Archive entry failed its checksum: {bad_entry}")
    return archive


def read_metadata_blob(archive: zipfile.ZipFile) -> Optional[str]:
    try:
        payload = archive.read(DATABASE_ENTRY)
    except KeyError:
        return None
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ArchiveCorrupt("Metadata entry is not valid UTF-8") from exc


def _safe_parts(name: str) -> Tuple[str, ...]:
    if "\\" in name or name.startswith("/"):
        raise ArchiveCorrupt(f"Unsafe path inside archive: {name}")
    parts = tuple(part for part in PurePosixPath(name).parts if part not in ("", "."))
    if not parts or any(part == ".." for part in parts) or ":" in parts[0]:
        raise ArchiveCorrupt(f"Unsafe path inside archive: {name}")
    return parts


def plan_members(archive: zipfile.ZipFile, target_dir: Path) -> List[Tuple[zipfile.ZipInfo, Path]]:
    members: List[Tuple[zipfile.ZipInfo, Path]] = []
    for info in archive.infolist():
        if info.is_dir():
            continue
        parts = _safe_parts(info.filename)
        if parts[0] == DATABASE_DIRNAME:
            continue
        members.append((info, target_dir.joinpath(*parts)))
    return members


def _extract_member(
    archive: zipfile.ZipFile,
    info: zipfile.ZipInfo,
    destination: Path,
    emitter: ProgressEmitter,
) -> None:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        output = destination.open("wb")
    except OSError as exc:
        raise StorageUnavailable(f"Cannot write {destination}: {exc}") from exc
    with output, archive.open(info, "r") as source:
        while True:
            try:
                chunk = source.read(_COPY_CHUNK)
            except (OSError, *_READ_ERRORS) as exc:
                raise ArchiveCorrupt(f"Archive entry unreadable: {info.filename}") from exc
            if not chunk:
                break
            try:
                output.write(chunk)
            except OSError as exc:
                raise StorageUnavailable(f"Cannot write {destination}: {exc}") from exc
            emitter.advance(len(chunk))
    try:
        mtime = time.mktime(info.date_time + (0, 0, -1))
        os.utime(destination, (mtime, mtime))
    except (OverflowError, ValueError, OSError):
        LOGGER.debug("could not restore mtime for %s", destination, exc_info=True)


def _prepare_target(target_dir: Path) -> Path:
    target = Path(target_dir).absolute()
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageUnavailable(f"Restore folder cannot be created: {target}") from exc
    if not os.access(target, os.W_OK | os.X_OK):
        raise StorageUnavailable(f"Restore folder is not writable: {target}")
    return target


def restore_archive(
    source: ArchiveSource,
    target_dir: Path,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    logger: Optional[BackupLogger] = None,
    work_dir: Optional[Path] = None,
) -> RestoreResult:
    """Extract a backup into *target_dir* and return its metadata blob.

    Parts are merged in full and every entry is checksum-verified before the
    first file is written, so a corrupt archive leaves *target_dir* untouched.
    """

    log = logger or NullBackupLogger()
    parts = resolve_sources(source)
    target = _prepare_target(target_dir)
    log.event(
        event="restore_start",
        phase="restore",
        ok=True,
        parts=[str(path) for path in parts],
        target=str(target),
    )
    try:
        with assembled_archive(parts, work_dir=work_dir) as merged:
            with open_validated(merged) as archive:
                blob = read_metadata_blob(archive)
                members = plan_members(archive, target)
                total = sum(info.file_size for info, _ in members)
                emitter = ProgressEmitter(progress_callback, total)
                emitter.start()
                for info, destination in members:
                    _extract_member(archive, info, destination, emitter)
    except (ArchiveCorrupt, StorageUnavailable) as exc:
        log.event(event="restore_failed", phase="restore", ok=False, error=str(exc), code=exc.code)
        raise

    if blob is None:
        log.warning("restore_missing_database", target=str(target))
    emitter.complete()
    log.event(event="restore_complete", phase="restore", ok=True, files=len(members), bytes=total)
    return RestoreResult(
        metadata_blob=blob,
        target_dir=target,
        restored_files=len(members),
        restored_bytes=total,
        parts_used=list(parts),
    )


__all__ = [
    "ArchiveSource",
    "assembled_archive",
    "open_validated",
    "plan_members",
    "read_metadata_blob",
    "resolve_sources",
    "restore_archive",
]
