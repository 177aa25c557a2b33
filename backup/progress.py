from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .types import BackupProgress

LOGGER = logging.getLogger("arcstore.backup.progress")

ProgressCallback = Callable[[BackupProgress], None]


class ProgressEmitter:
    """Turn byte counts into monotonic percentage events.

    Percent stays at or below 99 until :meth:`complete` is called, so 100 is
    only ever reported once the whole operation has succeeded.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        total_bytes: int,
        *,
        interval_s: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._total = max(0, int(total_bytes))
        self._interval = max(0.0, float(interval_s))
        self._clock = clock
        self._processed = 0
        self._last_percent = -1
        self._last_emit = 0.0
        self._finished = False

    @property
    def processed(self) -> int:
        return self._processed

    def start(self) -> None:
        self._send(0)

    def advance(self, count: int) -> None:
        if self._finished:
            return
        self._processed += max(0, int(count))
        if self._total > 0:
            percent = min(99, (self._processed * 100) // self._total)
        else:
            percent = 0
        now = self._clock()
        if percent > self._last_percent or now - self._last_emit >= self._interval:
            self._send(max(percent, self._last_percent))

    def complete(self) -> None:
        if self._finished:
            return
        self._send(100)
        self._finished = True

    def abort(self) -> None:
        self._finished = True

    def _send(self, percent: int) -> None:
        self._last_percent = percent
        self._last_emit = self._clock()
        if self._callback is None:
            return
        event = BackupProgress(
            percent=percent,
            processed_bytes=self._processed,
            total_bytes=self._total,
        )
        try:
            self._callback(event)
        except Exception:
            LOGGER.debug("progress callback failed", exc_info=True)


__all__ = ["ProgressCallback", "ProgressEmitter"]
