"""Messages exchanged with the duplicate scan worker.

Every message is an immutable value. Pixel grids are copied when a
``ScanItem`` is built, so the worker never shares mutable state with the host.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class ScanItem:
    item_id: str
    pixels: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        frozen = np.array(self.pixels, dtype=np.float32, copy=True)
        frozen.setflags(write=False)
        object.__setattr__(self, "pixels", frozen)


@dataclass(frozen=True)
class DuplicatePair:
    first_id: str
    second_id: str
    similarity: int

    def to_dict(self) -> Dict[str, Any]:
        return {"first_id": self.first_id, "second_id": self.second_id, "similarity": self.similarity}


@dataclass(frozen=True)
class StartScan:
    items: Tuple[ScanItem, ...]
    threshold: int = 90


@dataclass(frozen=True)
class CancelScan:
    pass


@dataclass(frozen=True)
class ScanProgress:
    percent: int


@dataclass(frozen=True)
class ScanResult:
    pairs: Tuple[DuplicatePair, ...]


@dataclass(frozen=True)
class ScanError:
    message: str


InboundMessage = Union[StartScan, CancelScan]
OutboundMessage = Union[ScanProgress, ScanResult, ScanError]


__all__ = [
    "CancelScan",
    "DuplicatePair",
    "InboundMessage",
    "OutboundMessage",
    "ScanError",
    "ScanItem",
    "ScanProgress",
    "ScanResult",
    "StartScan",
]
