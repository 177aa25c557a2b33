import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from core.errors import StorageUnavailable
from duplicates import CancellationToken, ScanFailed
from engine import MediaStoreFacade


def _noise_image(path: Path, seed: int) -> Path:
    pixels = (np.random.default_rng(seed).random((64, 64, 3)) * 255).astype(np.uint8)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pixels, "RGB").save(path)
    return path


@pytest.fixture()
def facade(tmp_path):
    library = tmp_path / "library"
    library.mkdir()
    return MediaStoreFacade(working_dir=tmp_path / "work", settings={}, library_root=library)


def test_missing_root_is_unavailable(tmp_path):
    store = MediaStoreFacade(working_dir=tmp_path / "work", settings={})

    with pytest.raises(StorageUnavailable):
        store.library_root
    with pytest.raises(StorageUnavailable):
        store.backup(tmp_path / "out.zip")


def test_select_library_root_persists(tmp_path):
    store = MediaStoreFacade(working_dir=tmp_path / "work", settings={})

    root = store.select_library_root(tmp_path / "photos")

    assert root.is_dir()
    stored = json.loads((tmp_path / "work" / "settings.json").read_text(encoding="utf-8"))
    assert stored["library"]["root"] == str(root)
    assert MediaStoreFacade(working_dir=tmp_path / "work").library_root == root


def test_ingest_thumbnail_and_usage(facade, tmp_path):
    source = _noise_image(tmp_path / "incoming" / "cat.png", 1)

    placed = facade.ingest(source)
    thumb = facade.derive_thumbnail(placed)

    assert placed.parent.parent.parent.parent == facade.library_root
    assert thumb.derived and thumb.exists
    items = facade.scan_library()
    assert [item.path for item in items] == [placed]
    usage = facade.library_usage()
    assert usage.image_count == 1
    assert usage.cache_bytes == thumb.path.stat().st_size

    assert facade.delete_item(placed) is True
    assert facade.scan_library() == []
    assert not thumb.path.exists()


def test_ingest_bytes(facade):
    placed = facade.ingest_bytes(b"raw", "upload.jpg")

    assert placed.read_bytes() == b"raw"
    assert facade.file_info(placed).name == "upload.jpg"


def test_backup_restore_roundtrip(facade, tmp_path):
    facade.ingest(_noise_image(tmp_path / "incoming" / "dog.png", 2))
    progress = []

    manifest = facade.backup(tmp_path / "out" / "lib.zip", part_count=2, metadata_blob='{"v":1}', on_progress=progress.append)
    report = facade.verify_backup(tmp_path / "out" / "lib.zip.part01")
    result = facade.restore(tmp_path / "out" / "lib.zip", target_dir=tmp_path / "restored")

    assert manifest.part_count == 2
    assert progress[-1].percent == 100
    assert report["has_database"] is True
    assert report["entries"] == 1
    assert result.metadata_blob == '{"v":1}'
    assert result.restored_files == 1
    assert (tmp_path / "work" / "logs" / "backup.jsonl").exists()


def test_find_duplicates_over_files(facade, tmp_path):
    first = _noise_image(tmp_path / "a.png", 5)
    copy = tmp_path / "b.png"
    copy.write_bytes(first.read_bytes())
    other = _noise_image(tmp_path / "c.png", 6)
    junk = tmp_path / "junk.png"
    junk.write_bytes(b"nope")
    percents = []

    pairs = facade.find_duplicates([first, copy, other, junk], threshold=95, on_progress=percents.append)

    assert [(pair.first_id, pair.second_id) for pair in pairs] == [(str(first), str(copy))]
    assert percents[-1] == 100


def test_find_duplicates_cancelled(facade, tmp_path):
    token = CancellationToken()
    token.set()

    result = facade.find_duplicates([_noise_image(tmp_path / "a.png", 1)], cancel_token=token)

    assert result is None


def test_find_duplicates_threshold_validation(facade):
    with pytest.raises(ValueError):
        facade.find_duplicates([], threshold=0)


def test_worker_failure_raises_scan_failed(facade, tmp_path, monkeypatch):
    def boom(pixels, hash_size):
        raise RuntimeError("numeric trouble")

    monkeypatch.setattr("duplicates.scanner.compute_fingerprint", boom)

    with pytest.raises(ScanFailed, match="numeric trouble"):
        facade.find_duplicates([_noise_image(tmp_path / "a.png", 1)], threshold=90)


def test_relocate_library(facade, tmp_path):
    facade.ingest_bytes(b"raw", "upload.jpg")
    events = []

    new_root = facade.relocate_library(tmp_path / "moved", on_progress=events.append)

    assert facade.library_root == new_root
    assert len(facade.scan_library()) == 1
    assert events[-1].percent == 100
