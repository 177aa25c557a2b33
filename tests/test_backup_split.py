import pytest

from backup.errors import ArchiveCorrupt
from backup.progress import ProgressEmitter
from backup.split import check_sequence, discover_parts, merge_parts, parse_part_name, part_sizes, split_archive


def test_part_sizes_put_remainder_last():
    assert part_sizes(10, 3) == [3, 3, 4]
    assert part_sizes(9, 3) == [3, 3, 3]
    assert part_sizes(2, 4) == [0, 0, 0, 2]


def test_parse_part_name():
    assert parse_part_name("library.zip.part07") == ("library.zip", 7)
    assert parse_part_name("library.zip") is None
    assert parse_part_name("library.zip.part7") is None


def test_split_then_merge_is_identity(tmp_path):
    payload = bytes(range(256)) * 41
    archive = tmp_path / "a.zip"
    archive.write_bytes(payload)

    parts = split_archive(archive, 5)

    assert not archive.exists()
    assert [part.name for part in parts] == [f"a.zip.part{n:02d}" for n in range(1, 6)]
    assert discover_parts(parts[3]) == parts
    merged = tmp_path / "merged.zip"
    assert merge_parts(parts, merged) == len(payload)
    assert merged.read_bytes() == payload


def test_split_rejects_bad_counts(tmp_path):
    archive = tmp_path / "a.zip"
    archive.write_bytes(b"abc")

    for bad in (1, 100):
        with pytest.raises(ValueError):
            split_archive(archive, bad)
    assert archive.exists()


def test_check_sequence():
    check_sequence([1, 2, 3])
    with pytest.raises(ArchiveCorrupt, match="out of order"):
        check_sequence([2, 1, 3])
    with pytest.raises(ArchiveCorrupt, match="02"):
        check_sequence([1, 3])


def test_merge_missing_part(tmp_path):
    first = tmp_path / "a.zip.part01"
    first.write_bytes(b"x")

    with pytest.raises(ArchiveCorrupt):
        merge_parts([first, tmp_path / "a.zip.part02"], tmp_path / "merged.zip")


def test_progress_emitter_is_monotonic_and_capped():
    ticks = iter(range(1000))
    events = []
    emitter = ProgressEmitter(events.append, 100, interval_s=0.0, clock=lambda: float(next(ticks)))

    emitter.start()
    for _ in range(10):
        emitter.advance(15)
    emitter.complete()
    emitter.complete()
    emitter.advance(5)

    percents = [event.percent for event in events]
    assert percents == sorted(percents)
    assert percents[-2] == 99
    assert percents[-1] == 100
    assert percents.count(100) == 1


def test_progress_callback_errors_are_contained():
    def broken(event):
        raise RuntimeError("ui went away")

    emitter = ProgressEmitter(broken, 10)
    emitter.start()
    emitter.advance(10)
    emitter.complete()
