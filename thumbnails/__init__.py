"""Thumbnail derivation for images and videos."""

from .deriver import ThumbnailConfig, ThumbnailDeriver, ThumbnailResult
from .errors import ThumbnailDerivationFailed
from .frames import extract_frame, resolve_ffmpeg

__all__ = [
    "ThumbnailConfig",
    "ThumbnailDerivationFailed",
    "ThumbnailDeriver",
    "ThumbnailResult",
    "extract_frame",
    "resolve_ffmpeg",
]
