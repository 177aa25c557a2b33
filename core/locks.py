from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, Optional

from .errors import LibraryBusy, StorageUnavailable
from .paths import get_lock_path

try:
    import fcntl as _fcntl  # type: ignore
except ImportError:  # pragma: no cover - Windows has no flock
    _fcntl = None  # type: ignore

LOGGER = logging.getLogger("arcstore.locks")

_POLL_INTERVAL = 0.05

_LIBRARY_LOCKS: Dict[str, threading.Lock] = {}
_LIBRARY_LOCKS_MTX = threading.Lock()


def _process_lock(key: str) -> threading.Lock:
    with _LIBRARY_LOCKS_MTX:
        lock = _LIBRARY_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LIBRARY_LOCKS[key] = lock
        return lock


class LibraryLock:
    """Single-writer guard for one library root.

    Threads of this process queue on an in-process lock. Other processes are
    kept out with an advisory ``flock`` on a file under the working
    directory. Waiting longer than *timeout* seconds raises ``LibraryBusy``.
    """

    def __init__(self, library_root: Path, *, working_dir: Path, timeout: float = 10.0) -> None:
        self.library_root = Path(library_root)
        self.lock_path = get_lock_path(working_dir, self.library_root)
        self.timeout = max(0.0, float(timeout))
        self._lock: Optional[threading.Lock] = None
        self._fd: Optional[int] = None

    def __enter__(self) -> "LibraryLock":
        deadline = time.monotonic() + self.timeout
        lock = _process_lock(str(self.lock_path))
        if not lock.acquire(timeout=self.timeout):
            raise LibraryBusy(f"Library is busy: {self.library_root}")
        self._lock = lock
        try:
            self._acquire_file(deadline)
        except BaseException:
            self._release()
            raise
        LOGGER.debug("library lock acquired", extra={"library_root": str(self.library_root)})
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._release()

    def _acquire_file(self, deadline: float) -> None:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self._fd = os.open(self.lock_path, os.O_CREAT | os.O_RDWR, 0o644)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot create lock file {self.lock_path}: {exc}") from exc
        if _fcntl is None:
            return
        while True:
            try:
                _fcntl.flock(self._fd, _fcntl.LOCK_EX | _fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LibraryBusy(f"Library is locked by another process: {self.library_root}")
                time.sleep(_POLL_INTERVAL)

    def _release(self) -> None:
        try:
            if self._fd is not None:
                if _fcntl is not None:
                    try:
                        _fcntl.flock(self._fd, _fcntl.LOCK_UN)
                    except OSError:
                        LOGGER.debug("flock release failed", exc_info=True)
                os.close(self._fd)
        finally:
            self._fd = None
            if self._lock is not None:
                self._lock.release()
                self._lock = None


__all__ = ["LibraryLock"]
