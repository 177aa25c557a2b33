import numpy as np
import pytest

from duplicates import (
    CancellationToken,
    DuplicateScanner,
    ScanError,
    ScanItem,
    ScanProgress,
    ScanResult,
    ScanState,
)


def _noise(seed: int) -> np.ndarray:
    return np.random.default_rng(seed).random((32, 32)) * 255.0


def _collect(scanner: DuplicateScanner):
    messages = list(scanner.messages(poll_interval=0.05))
    assert scanner.join(5)
    return messages


def test_scan_reports_near_duplicates():
    base = _noise(10)
    items = [
        ScanItem("a", base),
        ScanItem("b", base + 5.0),
        ScanItem("c", _noise(11)),
    ]
    scanner = DuplicateScanner()
    scanner.start(items, threshold=90)

    messages = _collect(scanner)

    assert isinstance(messages[-1], ScanResult)
    pairs = messages[-1].pairs
    assert [(pair.first_id, pair.second_id, pair.similarity) for pair in pairs] == [("a", "b", 100)]
    percents = [message.percent for message in messages if isinstance(message, ScanProgress)]
    assert percents[0] == 0
    assert percents == sorted(set(percents))
    assert percents[-1] == 100
    assert scanner.state is ScanState.COMPLETED


def test_items_are_copied_on_entry():
    pixels = _noise(12)
    item = ScanItem("a", pixels)
    pixels[:] = 0

    assert float(item.pixels.sum()) > 0
    with pytest.raises(ValueError):
        item.pixels[0, 0] = 1.0


def test_fewer_than_two_items_is_empty():
    scanner = DuplicateScanner()
    scanner.start([ScanItem("a", _noise(1)), ScanItem("a", _noise(1))])

    messages = _collect(scanner)

    assert messages[-1] == ScanResult(pairs=())


def test_cancel_from_first_progress_message():
    holder = {}
    received = []

    def on_message(message):
        received.append(message)
        if isinstance(message, ScanProgress):
            holder["scanner"].cancel()

    scanner = DuplicateScanner(on_message=on_message)
    holder["scanner"] = scanner
    scanner.start([ScanItem(str(n), _noise(n)) for n in range(20)])

    assert scanner.join(5)
    assert received == [ScanProgress(percent=0)]
    assert scanner.state is ScanState.CANCELLED
    assert not any(isinstance(message, ScanResult) for message in scanner.messages(poll_interval=0.01))


def test_external_token_cancels_before_start():
    token = CancellationToken()
    token.set()
    scanner = DuplicateScanner(cancel_token=token)
    scanner.start([ScanItem("a", _noise(1)), ScanItem("b", _noise(2))])

    assert _collect(scanner) == []
    assert scanner.state is ScanState.CANCELLED


def test_bad_pixels_produce_scan_error():
    scanner = DuplicateScanner()
    scanner.start([ScanItem("flat", np.zeros(32)), ScanItem("b", _noise(2))])

    messages = _collect(scanner)

    assert isinstance(messages[-1], ScanError)
    assert scanner.state is ScanState.FAILED
    scanner.cancel()
    assert scanner.state is ScanState.FAILED


def test_threshold_and_restart_are_validated():
    scanner = DuplicateScanner()
    for bad in (0, 101, True):
        with pytest.raises(ValueError):
            scanner.start([], threshold=bad)
    scanner.start([])
    with pytest.raises(RuntimeError):
        scanner.start([])
    _collect(scanner)
