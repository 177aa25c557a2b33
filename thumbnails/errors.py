from __future__ import annotations

from core.errors import MediaStoreError


class ThumbnailDerivationFailed(MediaStoreError):
    """A codec could not produce a preview for one item."""

    code = "thumbnail_failed"


__all__ = ["ThumbnailDerivationFailed"]
