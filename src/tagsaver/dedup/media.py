"""Media loading and still-frame extraction for fingerprinting."""

from __future__ import annotations

import io
import os
import tempfile
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import urlparse

import cv2
from PIL import Image

from ..logging import get_logger

logger = get_logger(__name__)

MediaKind = Literal["image", "video"]

VIDEO_EXTENSIONS = {".mp4", ".m4v", ".webm", ".mov", ".mkv", ".avi"}

# Browsers clamp very short GIF frame delays to 100 ms.
DEFAULT_FRAME_DURATION_MS = 100
MIN_FRAME_DURATION_MS = 10


class MediaDecodeError(Exception):
    """Raised when media cannot be decoded or seeked to a usable frame."""


def _extension(name: Optional[str]) -> str:
    if not name:
        return ""
    path = urlparse(name).path if "://" in name else name
    return Path(path).suffix.lower()


def detect_media_kind(
    name: Optional[str] = None,
    data: Optional[bytes] = None,
    content_type: Optional[str] = None,
) -> MediaKind:
    """
    Decide whether media must be decoded as video or as an image.

    Content type wins over the file extension, which wins over sniffing the
    leading bytes. Animated images (GIF, WebP, APNG) count as images; their
    frames are handled by Pillow.
    """
    if content_type:
        ctype = content_type.split(";")[0].strip().lower()
        if ctype.startswith("video/"):
            return "video"
        if ctype.startswith("image/"):
            return "image"

    if _extension(name) in VIDEO_EXTENSIONS:
        return "video"

    if data:
        head = data[:16]
        if head[4:8] == b"ftyp":
            return "video"
        if head[:4] == b"\x1a\x45\xdf\xa3":  # Matroska / WebM
            return "video"

    return "image"


def _animation_frame_index(img: Image.Image, offset_ms: float) -> int:
    elapsed = 0.0
    last = img.n_frames - 1
    for index in range(img.n_frames):
        img.seek(index)
        duration = img.info.get("duration") or 0
        if duration < MIN_FRAME_DURATION_MS:
            duration = DEFAULT_FRAME_DURATION_MS
        if elapsed + duration > offset_ms:
            return index
        elapsed += duration
    return last


def load_image_frame(source: bytes | Path, offset_seconds: float = 0.1) -> Image.Image:
    """
    Decode an image; for animations return the frame shown at ``offset_seconds``.

    Raises:
        MediaDecodeError: If the data is not a decodable image.
    """
    try:
        fp = io.BytesIO(source) if isinstance(source, bytes) else source
        with Image.open(fp) as img:
            if getattr(img, "is_animated", False) and img.n_frames > 1:
                index = _animation_frame_index(img, offset_seconds * 1000.0)
                img.seek(index)
                logger.debug(f"Using animation frame {index} of {img.n_frames}")
            img.load()
            return img.copy()
    except Exception as exc:
        raise MediaDecodeError(f"Failed to decode image: {exc}") from exc


def load_video_frame(path: Path, offset_seconds: float = 0.1) -> Image.Image:
    """
    Seek a video to ``offset_seconds`` and return that frame as an RGB image.

    Raises:
        MediaDecodeError: If the video cannot be opened, seeked or read.
    """
    capture = cv2.VideoCapture(str(path))
    try:
        if not capture.isOpened():
            raise MediaDecodeError(f"Cannot open video: {path}")

        ok = False
        frame = None
        if capture.set(cv2.CAP_PROP_POS_MSEC, offset_seconds * 1000.0):
            ok, frame = capture.read()

        if not ok:
            # Some backends ignore time-based seeks; retry by frame number.
            fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
            frame_index = int(round(offset_seconds * fps)) if fps > 0 else 0
            capture.set(cv2.CAP_PROP_POS_FRAMES, frame_index)
            ok, frame = capture.read()

        if not ok or frame is None:
            raise MediaDecodeError(f"Cannot read frame at {offset_seconds}s from {path}")

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return Image.fromarray(rgb)
    finally:
        capture.release()


def load_still_frame(
    data: bytes,
    name: Optional[str] = None,
    content_type: Optional[str] = None,
    offset_seconds: float = 0.1,
) -> Image.Image:
    """Decode in-memory media into the still frame used for fingerprinting."""
    kind = detect_media_kind(name, data, content_type)
    if kind == "image":
        return load_image_frame(data, offset_seconds)

    # OpenCV only decodes from a path.
    suffix = _extension(name) or ".mp4"
    handle = tempfile.NamedTemporaryFile(suffix=suffix, delete=False)
    try:
        with handle:
            handle.write(data)
        return load_video_frame(Path(handle.name), offset_seconds)
    finally:
        try:
            os.unlink(handle.name)
        except OSError as exc:
            logger.debug(f"Could not remove temporary video {handle.name}: {exc}")


def load_still_frame_from_path(path: Path, offset_seconds: float = 0.1) -> Image.Image:
    if not path.exists():
        raise MediaDecodeError(f"Media file does not exist: {path}")
    if detect_media_kind(str(path)) == "video":
        return load_video_frame(path, offset_seconds)
    return load_image_frame(path, offset_seconds)
