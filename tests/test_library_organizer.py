import datetime as dt

import pytest

from core.errors import StorageUnavailable
from library.organizer import move_into_library, place, resolve_free_name, save_bytes

DAY = dt.date(2024, 3, 9)


def test_place_copies_into_date_shard(tmp_path):
    source = tmp_path / "incoming" / "photo.jpg"
    source.parent.mkdir()
    source.write_bytes(b"jpeg-bytes")
    root = tmp_path / "library"
    root.mkdir()

    placed = place(source, root, now=DAY)

    assert placed == root / "2024" / "03" / "09" / "photo.jpg"
    assert placed.read_bytes() == b"jpeg-bytes"
    assert source.exists()


def test_collisions_get_numeric_suffix(tmp_path):
    root = tmp_path / "library"
    root.mkdir()

    first = save_bytes(b"a", "photo.jpg", root, now=DAY)
    second = save_bytes(b"b", "photo.jpg", root, now=DAY)
    third = save_bytes(b"c", "photo.jpg", root, now=DAY)

    assert [first.name, second.name, third.name] == ["photo.jpg", "photo_1.jpg", "photo_2.jpg"]
    assert first.read_bytes() == b"a"
    assert third.read_bytes() == b"c"


def test_resolve_free_name_without_suffix(tmp_path):
    (tmp_path / "README").write_text("x", encoding="utf-8")

    assert resolve_free_name(tmp_path, "README") == tmp_path / "README_1"


def test_move_removes_source(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"video")
    root = tmp_path / "library"
    root.mkdir()

    moved = move_into_library(source, root, now=DAY)

    assert not source.exists()
    assert moved.read_bytes() == b"video"


def test_missing_source_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        place(tmp_path / "nope.jpg", tmp_path)


def test_root_that_is_a_file_is_unavailable(tmp_path):
    root = tmp_path / "library"
    root.write_text("oops", encoding="utf-8")

    with pytest.raises(StorageUnavailable):
        save_bytes(b"data", "photo.jpg", root, now=DAY)


def test_save_bytes_rejects_empty_name(tmp_path):
    with pytest.raises(ValueError):
        save_bytes(b"data", "", tmp_path, now=DAY)
