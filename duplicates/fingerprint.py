"""Perceptual DCT fingerprints for still images.

An image is reduced to a small luminance grid, transformed with a 2-D
DCT-II, and the low-frequency block is thresholded against its median. Two
fingerprints are compared position by position.
"""
from __future__ import annotations

import io
from functools import lru_cache
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

SAMPLE_SIZE = 32
HASH_SIZE = 8

ImageSource = Union[str, Path, bytes, Image.Image]


class FingerprintInputError(ValueError):
    """The image could not be decoded into a luminance grid."""


def load_luminance(source: ImageSource, sample_size: int = SAMPLE_SIZE) -> np.ndarray:
    """Decode *source* and return a ``sample_size`` square float32 luminance grid.

    Pillow's ``L`` conversion uses the ITU-R 601 weights
    (0.299 R + 0.587 G + 0.114 B).
    """

    try:
        if isinstance(source, Image.Image):
            opened = source.copy()
        elif isinstance(source, (bytes, bytearray)):
            opened = Image.open(io.BytesIO(source))
        else:
            opened = Image.open(Path(source))
        with opened:
            opened.load()
            image = ImageOps.exif_transpose(opened)
            if image.mode in ("RGBA", "LA", "P"):
                image = image.convert("RGBA")
                background = Image.new("RGBA", image.size, (255, 255, 255, 255))
                image = Image.alpha_composite(background, image)
            gray = image.convert("L").resize((sample_size, sample_size), Image.Resampling.BILINEAR)
            return np.asarray(gray, dtype=np.float32).copy()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise FingerprintInputError(f"cannot decode image: {exc}") from exc


@lru_cache(maxsize=8)
def _dct_matrix(size: int) -> np.ndarray:
    n = np.arange(size)
    k = n.reshape(-1, 1)
    matrix = np.cos(np.pi * (2 * n + 1) * k / (2 * size))
    matrix[0, :] *= np.sqrt(1.0 / size)
    matrix[1:, :] *= np.sqrt(2.0 / size)
    return matrix


def compute_fingerprint(luminance: np.ndarray, hash_size: int = HASH_SIZE) -> str:
    """Return a ``hash_size * hash_size`` character string of ``0``/``1`` bits."""

    grid = np.asarray(luminance, dtype=np.float64)
    if grid.ndim != 2 or grid.shape[0] != grid.shape[1]:
        raise ValueError(f"luminance must be a square 2-D array, got shape {grid.shape}")
    size = grid.shape[0]
    if not 1 <= hash_size <= size:
        raise ValueError(f"hash_size must be between 1 and {size}")
    basis = _dct_matrix(size)
    coefficients = basis @ grid @ basis.T
    low = coefficients[:hash_size, :hash_size].flatten()
    # upper median of the low-frequency block
    median = np.sort(low)[low.size // 2]
    return "".join("1" if value > median else "0" for value in low)


def similarity(first: str, second: str) -> int:
    """Percentage of equal positions, rounded half up. Mismatched lengths score 0."""

    length = len(first)
    if length == 0 or length != len(second):
        return 0
    matches = sum(1 for a, b in zip(first, second) if a == b)
    return (200 * matches + length) // (2 * length)


__all__ = [
    "FingerprintInputError",
    "HASH_SIZE",
    "SAMPLE_SIZE",
    "compute_fingerprint",
    "load_luminance",
    "similarity",
]
