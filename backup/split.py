"""Split sealed archives into numbered parts and merge them back."""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .errors import ArchiveCorrupt

LOGGER = logging.getLogger("arcstore.backup.split")

MAX_PARTS = 99
_COPY_CHUNK = 1024 * 1024
_PART_PATTERN = re.compile(r"^(?P<base>.+)\.part(?P<seq>\d{2})$")


def part_name(archive_name: str, sequence: int) -> str:
    return f"{archive_name}.part{sequence:02d}"


def parse_part_name(name: str) -> Optional[Tuple[str, int]]:
    """Return ``(archive_name, sequence)`` for ``<archive>.partNN`` names."""

    match = _PART_PATTERN.match(name)
    if not match:
        return None
    return match.group("base"), int(match.group("seq"))


def part_sizes(total: int, part_count: int) -> List[int]:
    base = total // part_count
    sizes = [base] * part_count
    sizes[-1] += total - base * part_count
    return sizes


def _copy_range(source, handle, length: int) -> None:
    remaining = length
    while remaining > 0:
        chunk = source.read(min(_COPY_CHUNK, remaining))
        if not chunk:
            raise OSError("archive ended before the expected length")
        handle.write(chunk)
        remaining -= len(chunk)


def split_archive(archive_path: Path, part_count: int) -> List[Path]:
    """Cut *archive_path* into *part_count* contiguous parts and delete it.

    Every part but the last holds ``size // part_count`` bytes. The last part
    also carries the remainder.
    """

    if not 2 <= part_count <= MAX_PARTS:
        raise ValueError(f"part_count must be between 2 and {MAX_PARTS}")
    archive = Path(archive_path)
    sizes = part_sizes(archive.stat().st_size, part_count)
    parts: List[Path] = []
    try:
        with archive.open("rb") as source:
            for sequence, length in enumerate(sizes, start=1):
                target = archive.with_name(part_name(archive.name, sequence))
                parts.append(target)
                with target.open("wb") as handle:
                    _copy_range(source, handle, length)
    except OSError:
        for part in parts:
            part.unlink(missing_ok=True)
        raise
    archive.unlink()
    LOGGER.info("split %s into %d parts", archive, part_count)
    return parts


def discover_parts(part_path: Path) -> List[Path]:
    """Return every sibling part of *part_path* in sequence order.

    Raises ``ArchiveCorrupt`` if the sequence does not run 01..N without gaps.
    """

    path = Path(part_path)
    parsed = parse_part_name(path.name)
    if parsed is None:
        return [path]
    base, _ = parsed
    found: List[Tuple[int, Path]] = []
    try:
        siblings = list(path.parent.iterdir())
    except OSError as exc:
        raise ArchiveCorrupt(f"Cannot list archive parts in {path.parent}: {exc}") from exc
    for sibling in siblings:
        info = parse_part_name(sibling.name)
        if info is not None and info[0] == base and sibling.is_file():
            found.append((info[1], sibling))
    found.sort()
    check_sequence([seq for seq, _ in found])
    return [item for _, item in found]


def check_sequence(sequences: Sequence[int]) -> None:
    expected = list(range(1, len(sequences) + 1))
    if list(sequences) == expected:
        return
    if sorted(sequences) == expected:
        raise ArchiveCorrupt("Archive parts are out of order")
    missing = sorted(set(expected) - set(sequences)) or sorted(set(sequences) - set(expected))
    raise ArchiveCorrupt(f"Archive parts incomplete; check part(s) {', '.join(f'{n:02d}' for n in missing)}")


def merge_parts(parts: Sequence[Path], destination: Path) -> int:
    """Concatenate *parts* into *destination* and return the byte count."""

    written = 0
    with Path(destination).open("wb") as handle:
        for part in parts:
            try:
                source = Path(part).open("rb")
            except OSError as exc:
                raise ArchiveCorrupt(f"Archive part missing or unreadable: {part}") from exc
            with source:
                while True:
                    try:
                        chunk = source.read(_COPY_CHUNK)
                    except OSError as exc:
                        raise ArchiveCorrupt(f"Archive part unreadable: {part}") from exc
                    if not chunk:
                        break
                    handle.write(chunk)
                    written += len(chunk)
    return written


__all__ = [
    "MAX_PARTS",
    "check_sequence",
    "discover_parts",
    "merge_parts",
    "parse_part_name",
    "part_name",
    "part_sizes",
    "split_archive",
]
