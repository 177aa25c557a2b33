import io

import numpy as np
import pytest
from PIL import Image

from duplicates.fingerprint import FingerprintInputError, compute_fingerprint, load_luminance, similarity


def _noise(seed: int, size: int = 32) -> np.ndarray:
    return np.random.default_rng(seed).random((size, size)) * 255.0


def test_fingerprint_shape_and_alphabet():
    bits = compute_fingerprint(_noise(1))

    assert len(bits) == 64
    assert set(bits) <= {"0", "1"}


def test_brightness_shift_keeps_fingerprint():
    grid = _noise(2)

    assert compute_fingerprint(grid) == compute_fingerprint(grid + 10.0)


def test_inverted_image_scores_low():
    grid = _noise(3)

    score = similarity(compute_fingerprint(grid), compute_fingerprint(255.0 - grid))

    assert score < 20


def test_fingerprint_rejects_bad_shapes():
    with pytest.raises(ValueError):
        compute_fingerprint(np.zeros(32))
    with pytest.raises(ValueError):
        compute_fingerprint(np.zeros((32, 16)))
    with pytest.raises(ValueError):
        compute_fingerprint(np.zeros((4, 4)), hash_size=8)


def test_similarity_rounds_half_up():
    assert similarity("1111", "1111") == 100
    assert similarity("1010", "1000") == 75
    assert similarity("11111111", "11111110") == 88
    assert similarity("0000", "1111") == 0
    assert similarity("", "") == 0
    assert similarity("10", "101") == 0


def test_load_luminance_uses_601_weights():
    red = Image.new("RGB", (64, 48), (255, 0, 0))

    grid = load_luminance(red)

    assert grid.shape == (32, 32)
    assert grid.dtype == np.float32
    assert abs(float(grid.mean()) - 76.0) <= 1.0


def test_load_luminance_from_bytes_and_alpha():
    buffer = io.BytesIO()
    Image.new("RGBA", (10, 10), (0, 0, 0, 0)).save(buffer, format="PNG")

    grid = load_luminance(buffer.getvalue(), sample_size=8)

    assert grid.shape == (8, 8)
    assert float(grid.min()) >= 254.0


def test_load_luminance_rejects_garbage(tmp_path):
    junk = tmp_path / "junk.png"
    junk.write_bytes(b"not an image")

    with pytest.raises(FingerprintInputError):
        load_luminance(junk)
    with pytest.raises(FingerprintInputError):
        load_luminance(tmp_path / "missing.png")
