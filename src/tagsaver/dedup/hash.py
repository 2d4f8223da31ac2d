"""Perceptual fingerprint computation for duplicate detection."""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from typing import Optional, Tuple, Union

import httpx
import numpy as np
from PIL import Image
from scipy.fft import dctn

from ..config import Settings
from ..logging import get_logger
from .cache import FingerprintCache
from .fingerprint import Fingerprint
from .media import MediaDecodeError, load_still_frame, load_still_frame_from_path

logger = get_logger(__name__)

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])

MediaRef = Union[str, Path, bytes, Image.Image]


class FingerprintUnavailable(Exception):
    """Raised when media cannot be fingerprinted (decode, seek, fetch or timeout)."""


def flatten_alpha(image: Image.Image, background: Tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    """Return an RGB image with any transparency composited over ``background``."""
    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if not has_alpha:
        return image.convert("RGB")

    rgba = image.convert("RGBA")
    base = Image.new("RGBA", rgba.size, tuple(background) + (255,))
    base.alpha_composite(rgba)
    return base.convert("RGB")


def luma_grid(
    image: Image.Image,
    size: int = 32,
    background: Tuple[int, int, int] = (255, 255, 255),
) -> np.ndarray:
    """Downscale to ``size`` x ``size`` and convert to float luma."""
    rgb = flatten_alpha(image, background).resize((size, size), Image.Resampling.LANCZOS)
    pixels = np.asarray(rgb, dtype=np.float64)
    return pixels @ LUMA_WEIGHTS


def dct_fingerprint(
    image: Image.Image,
    hash_size: int = 32,
    lowfreq_size: int = 8,
    background: Tuple[int, int, int] = (255, 255, 255),
) -> Fingerprint:
    """
    Compute the DCT fingerprint of a still image.

    The lowest-frequency ``lowfreq_size`` x ``lowfreq_size`` block of the
    2-D DCT is kept, the DC term is dropped, and each remaining coefficient
    becomes one bit: 1 if it is at or above the block mean.

    Args:
        image: Still image in any Pillow mode
        hash_size: Side of the grid the image is reduced to
        lowfreq_size: Side of the retained low-frequency block
        background: Color transparent pixels are composited over

    Returns:
        Fingerprint with ``lowfreq_size ** 2 - 1`` bits
    """
    grid = luma_grid(image, hash_size, background)
    coefficients = dctn(grid, type=2, norm="ortho")
    block = coefficients[:lowfreq_size, :lowfreq_size].flatten()[1:]
    bits = block >= block.mean()
    return Fingerprint.from_bits(f"dct{block.size}", bits)


def average_fingerprint(
    image: Image.Image,
    background: Tuple[int, int, int] = (255, 255, 255),
) -> Fingerprint:
    """
    Compute the legacy 64-bit mean-threshold fingerprint.

    The image is reduced to 8x8, each pixel becomes the integer mean of its
    RGB channels, and a bit is 1 when that gray value is at or above the
    mean of all 64. A flat image therefore hashes to all ones.
    """
    small = flatten_alpha(image, background).resize((8, 8), Image.Resampling.LANCZOS)
    pixels = np.asarray(small, dtype=np.int64)
    gray = pixels.sum(axis=2) // 3
    return Fingerprint.from_bits("ahash64", (gray >= gray.mean()).flatten())


def _decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if ";base64" in header:
        return base64.b64decode(payload)
    return payload.encode("utf-8")


def _cache_key(media: MediaRef) -> Optional[str]:
    if isinstance(media, Path):
        return str(media)
    if isinstance(media, str) and not media.startswith("data:"):
        return media
    return None


class HashEngine:
    """
    Turns media references into fingerprints.

    A media reference is a Pillow image, raw bytes, a filesystem path, an
    ``http(s)`` URL or a ``data:`` URL. Fingerprints of path and http(s) sources
    are cached in the injected ``FingerprintCache``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[FingerprintCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.cache = cache if cache is not None else FingerprintCache(self.settings.cache_max_entries)
        self._http_client = http_client

    def fingerprint_image(self, image: Image.Image) -> Fingerprint:
        s = self.settings
        if s.hash_scheme == "ahash":
            return average_fingerprint(image, s.background_color)
        return dct_fingerprint(image, s.hash_size, s.lowfreq_size, s.background_color)

    def fingerprint_bytes(
        self,
        data: bytes,
        name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Fingerprint:
        """
        Decode in-memory media and fingerprint its still frame.

        Raises:
            FingerprintUnavailable: If the media cannot be decoded
        """
        try:
            frame = load_still_frame(data, name, content_type, self.settings.frame_offset_seconds)
            return self.fingerprint_image(frame)
        except MediaDecodeError as exc:
            raise FingerprintUnavailable(str(exc)) from exc
        except Exception as exc:
            raise FingerprintUnavailable(f"Failed to fingerprint {name or 'media'}: {exc}") from exc

    def fingerprint_path(self, path: Path) -> Fingerprint:
        """
        Load media from disk and fingerprint its still frame.

        Raises:
            FingerprintUnavailable: If the file is missing or cannot be decoded
        """
        try:
            frame = load_still_frame_from_path(path, self.settings.frame_offset_seconds)
            return self.fingerprint_image(frame)
        except MediaDecodeError as exc:
            raise FingerprintUnavailable(str(exc)) from exc
        except Exception as exc:
            raise FingerprintUnavailable(f"Failed to fingerprint {path}: {exc}") from exc

    async def compute_fingerprint(self, media: MediaRef) -> Optional[Fingerprint]:
        """
        Fingerprint ``media``, or return None when it is unavailable.

        None means "skip duplicate detection", never "unique". Work that
        exceeds ``hash_timeout_seconds`` is abandoned and reported as None.
        """
        key = _cache_key(media)
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Fingerprint cache hit for {key}")
                return cached

        try:
            fingerprint = await asyncio.wait_for(
                self._compute(media), timeout=self.settings.hash_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Fingerprinting {key or 'media'} timed out after {self.settings.hash_timeout_seconds}s"
            )
            return None
        except FingerprintUnavailable as exc:
            logger.warning(f"Fingerprint unavailable for {key or 'media'}: {exc}")
            return None

        if key is not None:
            self.cache.put(key, fingerprint)
        logger.debug(f"Computed fingerprint for {key or 'media'}: {fingerprint}")
        return fingerprint

    async def _compute(self, media: MediaRef) -> Fingerprint:
        if isinstance(media, Image.Image):
            return await asyncio.to_thread(self.fingerprint_image, media)
        if isinstance(media, bytes):
            return await asyncio.to_thread(self.fingerprint_bytes, media)
        if isinstance(media, str) and media.startswith("data:"):
            try:
                data = _decode_data_url(media)
            except ValueError as exc:
                raise FingerprintUnavailable(f"Malformed data URL: {exc}") from exc
            content_type = media[5:].split(";")[0].split(",")[0] or None
            return await asyncio.to_thread(self.fingerprint_bytes, data, None, content_type)
        if isinstance(media, str) and media.startswith(("http://", "https://")):
            data, content_type = await self._fetch(media)
            return await asyncio.to_thread(self.fingerprint_bytes, data, media, content_type)
        return await asyncio.to_thread(self.fingerprint_path, Path(media))

    async def _fetch(self, url: str) -> Tuple[bytes, Optional[str]]:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=self.settings.fetch_timeout_seconds)
                response.raise_for_status()
            else:
                async with httpx.AsyncClient(
                    timeout=self.settings.fetch_timeout_seconds, follow_redirects=True
                ) as client:
                    response = await client.get(url)
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FingerprintUnavailable(f"Failed to fetch {url}: {exc}") from exc
        return response.content, response.headers.get("content-type")
