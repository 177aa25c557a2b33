from __future__ import annotations

import datetime as dt
import hashlib
import os
from pathlib import Path
from typing import Optional

__all__ = [
    "CACHE_DIRNAME",
    "THUMBS_DIRNAME",
    "date_shard_dir",
    "ensure_working_dir_structure",
    "ensure_writable_dir",
    "get_default_settings_paths",
    "get_lock_path",
    "get_locks_dir",
    "get_logs_dir",
    "get_thumbnail_path",
    "get_thumbs_dir",
    "is_reserved_name",
    "resolve_working_dir",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

CACHE_DIRNAME = "_cache"
THUMBS_DIRNAME = "thumbs"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def ensure_writable_dir(path: Path) -> bool:
    """Create *path* if needed and confirm a file can be written inside it."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - cleanup on a read-only volume
            pass
        return False


def _prepare_working_dir(candidate: Path) -> Optional[Path]:
    if not ensure_writable_dir(candidate):
        return None
    try:
        get_logs_dir(candidate).mkdir(parents=True, exist_ok=True)
        return candidate
    except OSError:
        return None


def _local_appdata_dir() -> Optional[Path]:
    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        try:
            return _expand_path(local_appdata)
        except (OSError, RuntimeError):
            return None
    return None


def resolve_working_dir() -> Path:
    """Resolve the ArcStore working directory, creating it if required.

    ``ARCSTORE_HOME`` wins when it points somewhere writable. Windows hosts
    fall back to ``%LOCALAPPDATA%/ArcStore`` and everything else to
    ``~/.arcstore``.
    """

    env_home = os.environ.get("ARCSTORE_HOME")
    if env_home:
        try:
            env_path: Optional[Path] = _expand_path(env_home)
        except (OSError, RuntimeError):
            env_path = None
        if env_path:
            prepared = _prepare_working_dir(env_path)
            if prepared is not None:
                return prepared

    local_base = _local_appdata_dir()
    if local_base is not None:
        prepared = _prepare_working_dir(local_base / "ArcStore")
        if prepared is not None:
            return prepared

    fallback = Path.home() / ".arcstore"
    fallback.mkdir(parents=True, exist_ok=True)
    get_logs_dir(fallback).mkdir(parents=True, exist_ok=True)
    return fallback


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def get_locks_dir(working_dir: Path) -> Path:
    return working_dir / "locks"


def get_lock_path(working_dir: Path, library_root: Path) -> Path:
    """Return the lock file guarding *library_root*.

    Lock files live in the working directory so they never end up inside a
    backup of the library they protect.
    """

    key = os.path.normcase(str(Path(library_root).resolve()))
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
    return get_locks_dir(working_dir) / f"{digest}.lock"


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (
        working_dir,
        get_logs_dir(working_dir),
        get_locks_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]


def get_thumbs_dir(library_root: Path) -> Path:
    return Path(library_root) / CACHE_DIRNAME / THUMBS_DIRNAME


def get_thumbnail_path(library_root: Path, source: Path) -> Path:
    """Return ``<root>/_cache/thumbs/<stem>_thumb.jpg`` for *source*."""

    return get_thumbs_dir(library_root) / f"{Path(source).stem}_thumb.jpg"


def date_shard_dir(library_root: Path, when: Optional[dt.date] = None) -> Path:
    """Return ``<root>/YYYY/MM/DD`` for *when* (defaults to today)."""

    day = when or dt.date.today()
    return Path(library_root) / f"{day.year:04d}" / f"{day.month:02d}" / f"{day.day:02d}"


def is_reserved_name(name: str) -> bool:
    """Directories starting with ``_`` or ``.`` are never treated as media."""

    return name.startswith("_") or name.startswith(".")
