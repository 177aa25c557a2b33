import pytest

from core.errors import StorageUnavailable
from core.paths import get_thumbnail_path
from library.formats import MediaKind
from library.inventory import delete_media, directory_usage, file_info, relocate_library, scan_media_files


def _build_library(root):
    day = root / "2024" / "01" / "01"
    day.mkdir(parents=True)
    (day / "a.jpg").write_bytes(b"x" * 10)
    (day / "b.mp4").write_bytes(b"y" * 20)
    (day / "notes.txt").write_bytes(b"z" * 5)
    thumbs = root / "_cache" / "thumbs"
    thumbs.mkdir(parents=True)
    (thumbs / "a_thumb.jpg").write_bytes(b"t" * 3)
    return day


def test_scan_skips_cache_and_unsupported(tmp_path):
    day = _build_library(tmp_path)

    found = scan_media_files(tmp_path)

    assert found == [day / "a.jpg", day / "b.mp4"]


def test_scan_missing_root(tmp_path):
    with pytest.raises(StorageUnavailable):
        scan_media_files(tmp_path / "missing")


def test_directory_usage_breakdown(tmp_path):
    _build_library(tmp_path)

    usage = directory_usage(tmp_path)

    assert usage.total_bytes == 38
    assert usage.image_bytes == 10
    assert usage.video_bytes == 20
    assert usage.cache_bytes == 3
    assert usage.other_bytes == 5
    assert (usage.image_count, usage.video_count) == (1, 1)


def test_file_info_and_delete(tmp_path):
    day = _build_library(tmp_path)
    item = file_info(day / "a.jpg")

    assert item.kind is MediaKind.IMAGE
    assert item.size_bytes == 10
    assert item.to_dict()["id"] == str(day / "a.jpg")

    assert delete_media(day / "a.jpg", tmp_path) is True
    assert not (day / "a.jpg").exists()
    assert not get_thumbnail_path(tmp_path, day / "a.jpg").exists()
    assert delete_media(day / "a.jpg", tmp_path) is True


def test_shared_thumbnail_survives_until_last_item_is_deleted(tmp_path):
    first = tmp_path / "2024" / "01" / "01" / "photo.jpg"
    second = tmp_path / "2024" / "01" / "02" / "photo.png"
    for path in (first, second):
        path.parent.mkdir(parents=True)
        path.write_bytes(b"img")
    thumb = get_thumbnail_path(tmp_path, first)
    thumb.parent.mkdir(parents=True)
    thumb.write_bytes(b"t")

    assert delete_media(first, tmp_path) is True
    assert thumb.exists()

    assert delete_media(second, tmp_path) is True
    assert not thumb.exists()


def test_relocate_copies_tree_with_progress(tmp_path):
    old_root = tmp_path / "old"
    _build_library(old_root)
    events = []

    copied = relocate_library(old_root, tmp_path / "new", progress_callback=events.append)

    assert copied == 4
    assert (tmp_path / "new" / "2024" / "01" / "01" / "b.mp4").read_bytes() == b"y" * 20
    assert (old_root / "2024" / "01" / "01" / "b.mp4").exists()
    percents = [event.percent for event in events]
    assert percents == sorted(percents)
    assert percents[-1] == 100


def test_relocate_into_itself_is_rejected(tmp_path):
    _build_library(tmp_path)

    with pytest.raises(ValueError):
        relocate_library(tmp_path, tmp_path / "nested")
