"""Stream progress of long-running engine operations as NDJSON."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional

from core.errors import describe_error

LOGGER = logging.getLogger("arcstore.api.events")

Publish = Callable[[Dict[str, Any]], None]
Operation = Callable[[Publish], Dict[str, Any]]

_DONE = object()


class OperationStream:
    """Run a blocking operation on a worker thread and relay its events.

    The operation receives a ``publish`` callable it may call from any
    thread. Its return value becomes the final event. An exception becomes an
    ``{"type": "error", ...}`` event carrying the stable error code.
    """

    def __init__(self, operation: Operation, *, on_disconnect: Optional[Callable[[], None]] = None) -> None:
        self._operation = operation
        self._on_disconnect = on_disconnect
        self._task: Optional[asyncio.Task[None]] = None

    async def events(self) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()

        def publish(event: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        async def _run() -> None:
            try:
                final = await asyncio.to_thread(self._operation, publish)
            except Exception as exc:
                LOGGER.warning("streamed operation failed: %s", exc, exc_info=True)
                details = describe_error(exc)
                final = {"type": "error", "error": details["message"], "code": details["code"], "hint": details["hint"]}
            queue.put_nowait(final)
            queue.put_nowait(_DONE)

        self._task = loop.create_task(_run(), name="arcstore-operation")
        finished = False
        try:
            while True:
                event = await queue.get()
                if event is _DONE:
                    finished = True
                    break
                yield (json.dumps(event, ensure_ascii=False) + "\n").encode("utf-8")
        finally:
            if not finished:
                LOGGER.info("client disconnected before the operation finished")
                if self._on_disconnect is not None:
                    self._on_disconnect()


__all__ = ["OperationStream", "Publish"]
