"""Single entry point that sequences the library components for callers."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from backup.create import write_archive
from backup.logs import BackupLogger
from backup.progress import ProgressCallback
from backup.restore import ArchiveSource, restore_archive
from backup.types import BackupManifest, RestoreResult
from backup.verify import verify_archive
from core.errors import StorageUnavailable
from core.locks import LibraryLock
from core.paths import ensure_working_dir_structure, ensure_writable_dir, resolve_working_dir
from core.settings import load_settings, merge_defaults, update_settings
from duplicates import (
    CancellationToken,
    DuplicatePair,
    DuplicateScanner,
    FingerprintInputError,
    ScanError,
    ScanFailed,
    ScanItem,
    ScanProgress,
    ScanResult,
    load_luminance,
)
from duplicates.scanner import MessageCallback, validate_threshold
from library import inventory, organizer
from library.formats import MediaKind
from library.types import LibraryUsage, MediaItem, RelocationProgress
from thumbnails import ThumbnailConfig, ThumbnailDeriver, ThumbnailResult

LOGGER = logging.getLogger("arcstore.engine")

DuplicateSource = Union[MediaItem, Path, str]


class MediaStoreFacade:
    """Stateless orchestration over one working directory and library root.

    The facade only keeps configuration. Every writer runs inside a
    :class:`LibraryLock` so one library root never has two writers.
    """

    def __init__(
        self,
        *,
        working_dir: Optional[Path] = None,
        settings: Optional[Mapping[str, Any]] = None,
        library_root: Optional[Path] = None,
    ) -> None:
        self._working_dir = Path(working_dir) if working_dir is not None else resolve_working_dir()
        ensure_working_dir_structure(self._working_dir)
        if settings is None:
            self._settings: Dict[str, Any] = load_settings(self._working_dir)
        else:
            self._settings = merge_defaults(dict(settings))
        if library_root is not None:
            self._settings["library"]["root"] = str(library_root)
        self._backup_logger = BackupLogger(self._working_dir)

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def settings(self) -> Dict[str, Any]:
        return self._settings

    @property
    def library_root(self) -> Path:
        value = self._settings["library"].get("root")
        if not value:
            raise StorageUnavailable("No library folder has been selected")
        root = Path(value)
        if not root.is_dir():
            raise StorageUnavailable(f"Library folder is not available: {root}")
        return root

    # ------------------------------------------------------------------
    def _lock(self, root: Path) -> LibraryLock:
        timeout = float(self._settings["library"].get("lock_timeout_s") or 10.0)
        return LibraryLock(root, working_dir=self._working_dir, timeout=timeout)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._settings.get(name)
        return section if isinstance(section, dict) else {}

    # ------------------------------------------------------------------
    def select_library_root(self, path: Path) -> Path:
        root = Path(path).expanduser().absolute()
        if not ensure_writable_dir(root):
            raise StorageUnavailable(f"Library folder is not writable: {root}")
        self._settings["library"]["root"] = str(root)
        update_settings(self._working_dir, library={"root": str(root)})
        LOGGER.info("library root selected", extra={"library_root": str(root)})
        return root

    def ingest(self, source_path: Path, *, move: bool = False) -> Path:
        root = self.library_root
        with self._lock(root):
            if move:
                return organizer.move_into_library(Path(source_path), root)
            return organizer.place(Path(source_path), root)

    def ingest_bytes(self, data: bytes, file_name: str) -> Path:
        root = self.library_root
        with self._lock(root):
            return organizer.save_bytes(data, file_name, root)

    def derive_thumbnail(self, source_path: Path) -> ThumbnailResult:
        root = self.library_root
        deriver = ThumbnailDeriver(ThumbnailConfig.from_settings(self._settings))
        with self._lock(root):
            return deriver.derive(Path(source_path), root)

    def backup(
        self,
        destination: Path,
        *,
        part_count: int = 1,
        metadata_blob: Union[str, bytes] = "{}",
        on_progress: Optional[ProgressCallback] = None,
    ) -> BackupManifest:
        root = self.library_root
        options = self._section("backup")
        with self._lock(root):
            return write_archive(
                root,
                metadata_blob,
                Path(destination),
                part_count=part_count,
                progress_callback=on_progress,
                logger=self._backup_logger,
                chunk_bytes=int(options.get("chunk_bytes") or 1024 * 1024),
                progress_interval_s=float(options.get("progress_interval_ms") or 250) / 1000.0,
            )

    def restore(
        self,
        archive_path: ArchiveSource,
        *,
        target_dir: Optional[Path] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RestoreResult:
        target = Path(target_dir) if target_dir is not None else self.library_root
        with self._lock(target):
            return restore_archive(
                archive_path,
                target,
                progress_callback=on_progress,
                logger=self._backup_logger,
            )

    def verify_backup(self, archive_path: ArchiveSource) -> Dict[str, object]:
        return verify_archive(archive_path, logger=self._backup_logger)

    # ------------------------------------------------------------------
    def scan_library(self) -> List[MediaItem]:
        root = self.library_root
        items: List[MediaItem] = []
        for path in inventory.scan_media_files(root):
            try:
                items.append(MediaItem.from_path(path))
            except OSError:
                LOGGER.warning("file vanished during scan: %s", path)
        return items

    def library_usage(self) -> LibraryUsage:
        return inventory.directory_usage(self.library_root)

    def file_info(self, path: Path) -> MediaItem:
        return inventory.file_info(Path(path))

    def delete_item(self, path: Path) -> bool:
        root = self.library_root
        with self._lock(root):
            return inventory.delete_media(Path(path), root)

    def relocate_library(
        self,
        new_root: Path,
        *,
        on_progress: Optional[Callable[[RelocationProgress], None]] = None,
    ) -> Path:
        """Copy the library to *new_root* and make it the selected root."""

        old_root = self.library_root
        with self._lock(old_root):
            inventory.relocate_library(old_root, Path(new_root), progress_callback=on_progress)
        return self.select_library_root(Path(new_root))

    # ------------------------------------------------------------------
    def _scan_items(self, sources: Iterable[DuplicateSource]) -> List[ScanItem]:
        sample_size = int(self._section("duplicates").get("sample_size") or 32)
        items: List[ScanItem] = []
        for source in sources:
            if isinstance(source, MediaItem):
                if source.kind is MediaKind.VIDEO:
                    continue
                item_id, path = source.item_id, source.path
            else:
                item_id, path = str(source), Path(source)
            try:
                pixels = load_luminance(path, sample_size)
            except FingerprintInputError as exc:
                LOGGER.warning("skipping %s for duplicate scan: %s", path, exc)
                continue
            items.append(ScanItem(item_id=item_id, pixels=pixels))
        return items

    def _threshold(self, threshold: Optional[int]) -> int:
        value = threshold if threshold is not None else int(self._section("duplicates").get("threshold") or 90)
        return validate_threshold(value)

    def start_duplicate_scan(
        self,
        sources: Iterable[DuplicateSource],
        *,
        threshold: Optional[int] = None,
        on_message: Optional[MessageCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DuplicateScanner:
        """Decode *sources* on the calling thread and hand them to a new worker."""

        level = self._threshold(threshold)
        items = self._scan_items(sources)
        scanner = DuplicateScanner(
            hash_size=int(self._section("duplicates").get("hash_size") or 8),
            on_message=on_message,
            cancel_token=cancel_token,
        )
        scanner.start(items, threshold=level)
        return scanner

    def find_duplicates(
        self,
        sources: Iterable[DuplicateSource],
        *,
        threshold: Optional[int] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[List[DuplicatePair]]:
        """Run a scan to completion. Returns ``None`` if *cancel_token* fires first."""

        scanner = self.start_duplicate_scan(sources, threshold=threshold, cancel_token=cancel_token)
        try:
            for message in scanner.messages():
                if cancel_token is not None and cancel_token.is_set():
                    return None
                if isinstance(message, ScanProgress) and on_progress is not None:
                    on_progress(message.percent)
                elif isinstance(message, ScanResult):
                    return list(message.pairs)
                elif isinstance(message, ScanError):
                    raise ScanFailed(message.message)
            return None
        finally:
            scanner.cancel()


__all__ = ["MediaStoreFacade"]
