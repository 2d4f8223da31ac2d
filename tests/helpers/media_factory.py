"""Helpers for building test media and record stores."""

import io
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np
from PIL import Image, ImageDraw

from tagsaver.store.base import ImageRecord


def make_pattern_image(size=(128, 128), seed=0) -> Image.Image:
    """Create a deterministic image with enough structure to hash meaningfully."""
    img = Image.new('RGB', size, 'white')
    draw = ImageDraw.Draw(img)
    w, h = size
    step = max(4, w // 8)
    for i in range(0, w, step):
        shade = (i * 7 + seed * 53) % 256
        fill = (shade, 255 - shade, (shade * 3) % 256)
        draw.rectangle([i, (seed * 11) % (h // 2), i + step // 2, h - 1], fill=fill)
    draw.ellipse([w // 4, h // 4, 3 * w // 4, 3 * h // 4], outline='black', width=3)
    return img


def half_white_image(size=(64, 64)) -> Image.Image:
    """Left half white, right half black."""
    img = Image.new('RGB', size, 'black')
    ImageDraw.Draw(img).rectangle([0, 0, size[0] // 2 - 1, size[1] - 1], fill='white')
    return img


def image_bytes(img: Image.Image, fmt: str = 'PNG') -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_gif_bytes(frames: Sequence[Image.Image], durations: Sequence[int]) -> bytes:
    """Encode frames as an animated GIF with per-frame durations in ms."""
    buffer = io.BytesIO()
    frames[0].save(
        buffer,
        format='GIF',
        save_all=True,
        append_images=list(frames[1:]),
        duration=list(durations),
        loop=0,
        optimize=False,
    )
    return buffer.getvalue()


def make_video(path: Path, frames: Sequence[Image.Image], fps: float = 10.0) -> Optional[Path]:
    """
    Write frames to an MJPG AVI file.

    Returns:
        The path, or None if this OpenCV build cannot write video
    """
    width, height = frames[0].size
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*'MJPG'), fps, (width, height))
    if not writer.isOpened():
        return None
    try:
        for frame in frames:
            writer.write(cv2.cvtColor(np.asarray(frame.convert('RGB')), cv2.COLOR_RGB2BGR))
    finally:
        writer.release()
    return path


def pool_record(pool_id: str, index: int, name: Optional[str] = None) -> ImageRecord:
    return ImageRecord(
        source_url=f"https://example.test/post/{name or f'{pool_id}-{index}'}",
        tags=("artist:someone", "landscape"),
        media_url=f"https://cdn.example.test/{name or f'{pool_id}-{index}'}.png",
        pool_id=pool_id,
        pool_index=index,
    )


def fingerprinted_record(fingerprint: str, name: str) -> ImageRecord:
    return ImageRecord(
        source_url=f"https://example.test/post/{name}",
        tags=("general:test",),
        media_url=f"https://cdn.example.test/{name}.png",
        fingerprint=fingerprint,
    )


def pool_layout(records: List[ImageRecord]) -> dict:
    """Map pool_index -> source_url for a pool's records."""
    return {r.pool_index: r.source_url for r in records}
