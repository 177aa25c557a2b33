"""Collision-free placement of incoming media into the date-sharded tree."""

from __future__ import annotations

import datetime as dt
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from core.errors import StorageUnavailable
from core.paths import date_shard_dir

LOGGER = logging.getLogger("arcstore.library.organizer")


def resolve_free_name(directory: Path, file_name: str) -> Path:
    """Return the first free ``name``, ``name_1``, ``name_2``... in *directory*."""

    candidate = Path(directory) / file_name
    if not candidate.exists():
        return candidate
    stem, suffix = os.path.splitext(file_name)
    counter = 1
    while True:
        candidate = Path(directory) / f"{stem}_{counter}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def _prepare_shard(library_root: Path, now: Optional[dt.date]) -> Path:
    shard = date_shard_dir(library_root, now)
    try:
        shard.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageUnavailable(f"Cannot create {shard}: {exc}") from exc
    return shard


def _require_source(source_path: Path) -> Path:
    source = Path(source_path)
    if not source.is_file():
        raise FileNotFoundError(f"Source file not found: {source}")
    return source


def place(source_path: Path, library_root: Path, *, now: Optional[dt.date] = None) -> Path:
    """Copy *source_path* into ``library_root/YYYY/MM/DD`` and return the new path."""

    source = _require_source(source_path)
    target = resolve_free_name(_prepare_shard(library_root, now), source.name)
    try:
        shutil.copy2(source, target)
    except OSError as exc:
        target.unlink(missing_ok=True)
        raise StorageUnavailable(f"Cannot copy into {target.parent}: {exc}") from exc
    LOGGER.info("placed %s -> %s", source, target)
    return target


def move_into_library(source_path: Path, library_root: Path, *, now: Optional[dt.date] = None) -> Path:
    """Like :func:`place` but the source file is moved instead of copied."""

    source = _require_source(source_path)
    target = resolve_free_name(_prepare_shard(library_root, now), source.name)
    try:
        shutil.move(str(source), str(target))
    except OSError as exc:
        raise StorageUnavailable(f"Cannot move into {target.parent}: {exc}") from exc
    LOGGER.info("moved %s -> %s", source, target)
    return target


def save_bytes(
    data: bytes,
    file_name: str,
    library_root: Path,
    *,
    now: Optional[dt.date] = None,
) -> Path:
    name = Path(file_name).name
    if not name:
        raise ValueError("file_name must name a file")
    target = resolve_free_name(_prepare_shard(library_root, now), name)
    try:
        handle = open(target, "xb")
    except OSError as exc:
        raise StorageUnavailable(f"Cannot write {target}: {exc}") from exc
    try:
        with handle:
            handle.write(data)
    except OSError as exc:
        target.unlink(missing_ok=True)
        raise StorageUnavailable(f"Cannot write {target}: {exc}") from exc
    LOGGER.info("saved %d bytes -> %s", len(data), target)
    return target


__all__ = ["move_into_library", "place", "resolve_free_name", "save_bytes"]
