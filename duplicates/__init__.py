"""Perceptual near-duplicate detection for library images."""
from __future__ import annotations

from core.errors import MediaStoreError

from .fingerprint import FingerprintInputError, compute_fingerprint, load_luminance, similarity
from .messages import (
    CancelScan,
    DuplicatePair,
    ScanError,
    ScanItem,
    ScanProgress,
    ScanResult,
    StartScan,
)
from .scanner import CancellationToken, DuplicateScanner, ScanState


class ScanFailed(MediaStoreError):
    """The worker raised while fingerprinting or comparing."""

    code = "scan_failed"


__all__ = [
    "CancelScan",
    "CancellationToken",
    "DuplicatePair",
    "DuplicateScanner",
    "FingerprintInputError",
    "ScanError",
    "ScanFailed",
    "ScanItem",
    "ScanProgress",
    "ScanResult",
    "ScanState",
    "StartScan",
    "compute_fingerprint",
    "load_luminance",
    "similarity",
]
