"""Background near-duplicate detection on a dedicated worker thread."""
from __future__ import annotations

import itertools
import logging
import queue
import threading
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence

from .fingerprint import HASH_SIZE, compute_fingerprint, similarity
from .messages import (
    CancelScan,
    DuplicatePair,
    InboundMessage,
    OutboundMessage,
    ScanError,
    ScanItem,
    ScanProgress,
    ScanResult,
    StartScan,
)

LOGGER = logging.getLogger("arcstore.duplicates")

DEFAULT_THRESHOLD = 90

MessageCallback = Callable[[OutboundMessage], None]


class CancellationToken:
    def __init__(self) -> None:
        self._evt = threading.Event()

    def set(self) -> None:
        self._evt.set()

    def is_set(self) -> bool:
        return self._evt.is_set()

    def wait(self, timeout: float) -> bool:
        return self._evt.wait(timeout)


class ScanState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def validate_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int) or not 1 <= threshold <= 100:
        raise ValueError("threshold must be an integer between 1 and 100")
    return threshold


class DuplicateScanner:
    """Own one worker thread that runs a single duplicate scan.

    The host talks to the worker only through messages: ``StartScan`` and
    ``CancelScan`` go in through :meth:`post`, ``ScanProgress`` and then
    exactly one ``ScanResult`` or ``ScanError`` come out. Outbound messages
    are queued for :meth:`messages` and also handed to *on_message* on the
    worker thread. Once :meth:`cancel` returns nothing else is emitted.
    """

    def __init__(
        self,
        *,
        hash_size: int = HASH_SIZE,
        on_message: Optional[MessageCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        name: str = "arcstore-duplicates",
    ) -> None:
        self._hash_size = int(hash_size)
        self._on_message = on_message
        self._inbox: "queue.Queue[InboundMessage]" = queue.Queue()
        self._outbox: "queue.Queue[OutboundMessage]" = queue.Queue()
        self._token = cancel_token or CancellationToken()
        self._emit_lock = threading.RLock()
        self._state = ScanState.IDLE
        self._last_percent = -1
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._token.is_set()

    # ------------------------------------------------------------------
    def post(self, message: InboundMessage) -> None:
        if isinstance(message, CancelScan):
            self.cancel()
            return
        if not isinstance(message, StartScan):
            raise TypeError(f"unsupported message: {type(message).__name__}")
        validate_threshold(message.threshold)
        with self._emit_lock:
            if self._state is not ScanState.IDLE:
                raise RuntimeError(f"scan already {self._state.value}")
            self._state = ScanState.RUNNING
        self._inbox.put(message)

    def start(self, items: Sequence[ScanItem], threshold: int = DEFAULT_THRESHOLD) -> None:
        self.post(StartScan(items=tuple(items), threshold=threshold))

    def cancel(self) -> None:
        with self._emit_lock:
            if self._state in (ScanState.COMPLETED, ScanState.FAILED):
                return
            self._token.set()
            self._state = ScanState.CANCELLED
        self._inbox.put(CancelScan())

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def messages(self, poll_interval: float = 0.1) -> Iterator[OutboundMessage]:
        """Yield outbound messages until the terminal one, or until a cancelled worker stops."""

        while True:
            try:
                message = self._outbox.get(timeout=poll_interval)
            except queue.Empty:
                if self._thread.is_alive():
                    continue
                try:
                    message = self._outbox.get_nowait()
                except queue.Empty:
                    return
            yield message
            if isinstance(message, (ScanResult, ScanError)):
                return

    # ------------------------------------------------------------------
    def _run(self) -> None:
        message = self._inbox.get()
        if not isinstance(message, StartScan):
            return
        if self._token.is_set():
            self._state = ScanState.CANCELLED
            return
        LOGGER.info("duplicate scan started", extra={"items": len(message.items), "threshold": message.threshold})
        try:
            pairs = self._scan(message.items, message.threshold)
        except Exception as exc:
            LOGGER.exception("duplicate scan failed")
            self._finish(ScanError(message=str(exc) or type(exc).__name__), ScanState.FAILED)
            return
        if pairs is None:
            with self._emit_lock:
                self._state = ScanState.CANCELLED
            LOGGER.info("duplicate scan cancelled")
            return
        LOGGER.info("duplicate scan finished", extra={"pairs": len(pairs)})
        self._finish(ScanResult(pairs=tuple(pairs)), ScanState.COMPLETED)

    def _scan(self, items: Sequence[ScanItem], threshold: int) -> Optional[List[DuplicatePair]]:
        unique: List[ScanItem] = []
        seen = set()
        for item in items:
            if item.item_id in seen:
                LOGGER.warning("ignoring repeated item id %s", item.item_id)
                continue
            seen.add(item.item_id)
            unique.append(item)

        self._report(0)
        count = len(unique)
        fingerprints = []
        for index, item in enumerate(unique):
            if self._token.is_set():
                return None
            fingerprints.append((item.item_id, compute_fingerprint(item.pixels, self._hash_size)))
            self._report(((index + 1) * 50) // count)

        total_pairs = count * (count - 1) // 2
        pairs: List[DuplicatePair] = []
        compared = 0
        for (first_id, first), (second_id, second) in itertools.combinations(fingerprints, 2):
            if self._token.is_set():
                return None
            score = similarity(first, second)
            if score >= threshold:
                pairs.append(DuplicatePair(first_id=first_id, second_id=second_id, similarity=score))
            compared += 1
            self._report(50 + (compared * 50) // total_pairs)

        if self._token.is_set():
            return None
        self._report(100)
        return pairs

    def _report(self, percent: int) -> None:
        if percent <= self._last_percent:
            return
        self._last_percent = percent
        self._emit(ScanProgress(percent=percent))

    def _emit(self, message: OutboundMessage) -> None:
        with self._emit_lock:
            if self._token.is_set():
                return
            self._deliver(message)

    def _finish(self, message: OutboundMessage, state: ScanState) -> None:
        with self._emit_lock:
            if self._token.is_set():
                return
            self._state = state
            self._deliver(message)

    def _deliver(self, message: OutboundMessage) -> None:
        self._outbox.put(message)
        if self._on_message is None:
            return
        try:
            self._on_message(message)
        except Exception:
            LOGGER.warning("duplicate scan listener failed", exc_info=True)


__all__ = [
    "CancellationToken",
    "DEFAULT_THRESHOLD",
    "DuplicateScanner",
    "ScanState",
    "validate_threshold",
]
