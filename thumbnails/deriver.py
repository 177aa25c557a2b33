"""Bounded JPEG previews for library items."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from core.errors import StorageUnavailable
from core.paths import get_thumbnail_path
from library.formats import MediaKind, media_kind_for

from .errors import ThumbnailDerivationFailed
from .frames import extract_frame

LOGGER = logging.getLogger("arcstore.thumbnails")

_WHITE = (255, 255, 255)


@dataclass(slots=True)
class ThumbnailConfig:
    """Encoding controls for derived previews."""

    max_side: int = 512
    quality: int = 85
    progressive: bool = True
    video_timestamp_s: float = 1.0
    ffmpeg_path: Optional[str] = None
    ffmpeg_timeout_s: float = 15.0

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "ThumbnailConfig":
        section = settings.get("thumbnails") if isinstance(settings, Mapping) else None
        if not isinstance(section, Mapping):
            return cls()
        defaults = cls()
        return cls(
            max_side=max(1, int(section.get("max_side", defaults.max_side))),
            quality=min(95, max(1, int(section.get("quality", defaults.quality)))),
            progressive=bool(section.get("progressive", defaults.progressive)),
            video_timestamp_s=max(0.0, float(section.get("video_timestamp_s", defaults.video_timestamp_s))),
            ffmpeg_path=section.get("ffmpeg_path") or None,
            ffmpeg_timeout_s=max(1.0, float(section.get("ffmpeg_timeout_s", defaults.ffmpeg_timeout_s))),
        )


@dataclass(slots=True, frozen=True)
class ThumbnailResult:
    """Outcome of one derivation. ``path`` is set even when nothing was written."""

    path: Path
    derived: bool
    reason: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def to_dict(self) -> dict:
        return {"path": str(self.path), "derived": self.derived, "reason": self.reason}


class ThumbnailDeriver:
    def __init__(self, config: Optional[ThumbnailConfig] = None) -> None:
        self._config = config or ThumbnailConfig()

    @property
    def config(self) -> ThumbnailConfig:
        return self._config

    def derive(self, source_path: Path, library_root: Path) -> ThumbnailResult:
        source = Path(source_path)
        target = get_thumbnail_path(library_root, source)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot create thumbnail cache {target.parent}: {exc}") from exc

        try:
            image = self._load(source)
            preview = self._fit(image)
        except ThumbnailDerivationFailed as exc:
            LOGGER.warning(
                "thumbnail skipped for %s: %s",
                source,
                exc,
                extra={"source": str(source)},
            )
            return ThumbnailResult(path=target, derived=False, reason=str(exc))

        self._write(preview, target)
        LOGGER.debug("thumbnail written %s (%dx%d)", target, preview.width, preview.height)
        return ThumbnailResult(path=target, derived=True)

    def _load(self, source: Path) -> Image.Image:
        if not source.is_file():
            raise ThumbnailDerivationFailed(f"source missing: {source}")
        if media_kind_for(source) is MediaKind.VIDEO:
            return extract_frame(
                source,
                timestamp=self._config.video_timestamp_s,
                ffmpeg_path=self._config.ffmpeg_path,
                timeout=self._config.ffmpeg_timeout_s,
            )
        try:
            with Image.open(source) as handle:
                handle.load()
                return ImageOps.exif_transpose(handle)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ThumbnailDerivationFailed(f"cannot decode image: {exc}") from exc

    def _fit(self, image: Image.Image) -> Image.Image:
        try:
            if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
                rgba = image.convert("RGBA")
                flattened = Image.new("RGB", rgba.size, _WHITE)
                flattened.paste(rgba, mask=rgba.getchannel("A"))
                image = flattened
            elif image.mode != "RGB":
                image = image.convert("RGB")
            side = self._config.max_side
            # thumbnail() keeps the aspect ratio and never enlarges
            image.thumbnail((side, side), Image.Resampling.LANCZOS)
        except (OSError, ValueError) as exc:
            raise ThumbnailDerivationFailed(f"cannot resize image: {exc}") from exc
        return image

    def _write(self, image: Image.Image, target: Path) -> None:
        partial = target.with_name(target.name + ".part")
        try:
            image.save(
                partial,
                format="JPEG",
                quality=self._config.quality,
                optimize=True,
                progressive=self._config.progressive,
            )
            os.replace(partial, target)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise StorageUnavailable(f"Cannot write thumbnail {target}: {exc}") from exc


__all__ = ["ThumbnailConfig", "ThumbnailDeriver", "ThumbnailResult"]
