"""Single-frame extraction from video files through ffmpeg."""
from __future__ import annotations

import io
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import ThumbnailDerivationFailed

LOGGER = logging.getLogger("arcstore.thumbnails.frames")


def _executable_name(name: str) -> str:
    return f"{name}.exe" if os.name == "nt" else name


def resolve_ffmpeg(override: Optional[str] = None) -> Optional[str]:
    """Locate ffmpeg, honouring a configured file or folder override."""

    if override:
        candidate = Path(os.path.expandvars(os.path.expanduser(override)))
        if candidate.is_dir():
            exe = candidate / _executable_name("ffmpeg")
            if exe.exists():
                return str(exe.resolve())
        elif candidate.exists():
            return str(candidate.resolve())
    return shutil.which("ffmpeg")


def extract_frame(
    video_path: Path,
    *,
    timestamp: float = 1.0,
    ffmpeg_path: Optional[str] = None,
    timeout: float = 15.0,
) -> Image.Image:
    """Return the frame at *timestamp* seconds as a Pillow image.

    Raises ``ThumbnailDerivationFailed`` when ffmpeg is missing, times out,
    or produces no frame (for example a clip shorter than *timestamp*).
    """

    executable = resolve_ffmpeg(ffmpeg_path)
    if not executable:
        raise ThumbnailDerivationFailed("ffmpeg is not available")
    args = [executable, "-hide_banner", "-loglevel", "error"]
    if timestamp > 0:
        args.extend(["-ss", f"{timestamp:.3f}"])
    args.extend(["-i", str(video_path), "-frames:v", "1", "-f", "image2pipe", "-vcodec", "png", "pipe:1"])
    try:
        completed = subprocess.run(
            args,
            capture_output=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ThumbnailDerivationFailed(f"ffmpeg timed out after {timeout:.0f}s") from exc
    except OSError as exc:
        raise ThumbnailDerivationFailed(f"ffmpeg could not start: {exc}") from exc
    if completed.returncode != 0 or not completed.stdout:
        stderr = completed.stderr.decode("utf-8", "ignore").strip()
        raise ThumbnailDerivationFailed(stderr or f"no frame at {timestamp:.3f}s")
    try:
        with Image.open(io.BytesIO(completed.stdout)) as frame:
            frame.load()
            return frame.copy()
    except (UnidentifiedImageError, OSError) as exc:
        raise ThumbnailDerivationFailed(f"unreadable frame data: {exc}") from exc


__all__ = ["extract_frame", "resolve_ffmpeg"]
