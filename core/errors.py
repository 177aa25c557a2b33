"""Error taxonomy shared by every engine component."""

from __future__ import annotations

from typing import Dict, Optional


class MediaStoreError(RuntimeError):
    """Base class for failures surfaced to callers of the engine."""

    code = "internal"
    hint: Optional[str] = None


class StorageUnavailable(MediaStoreError):
    """Library root or target directory is missing, unreadable or unwritable."""

    code = "storage_unavailable"
    hint = "Check that the drive is connected and the folder is writable."


class LibraryBusy(MediaStoreError):
    """Another writer holds the library lock."""

    code = "library_busy"
    hint = "Wait for the running operation to finish and try again."


def describe_error(exc: BaseException) -> Dict[str, Optional[str]]:
    """Render *exc* as the ``{code, message, hint}`` payload shown to users."""

    if isinstance(exc, MediaStoreError):
        return {"code": exc.code, "message": str(exc) or exc.code, "hint": exc.hint}
    if isinstance(exc, FileNotFoundError):
        return {"code": "not_found", "message": str(exc), "hint": None}
    if isinstance(exc, ValueError):
        return {"code": "invalid_argument", "message": str(exc), "hint": None}
    return {"code": MediaStoreError.code, "message": str(exc) or type(exc).__name__, "hint": None}


__all__ = ["LibraryBusy", "MediaStoreError", "StorageUnavailable", "describe_error"]
