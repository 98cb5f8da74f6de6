"""Shrink oversized images so WhatsApp's media API accepts them."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass

try:
    from PIL import Image, ImageOps

    IMAGING_SUPPORT = True
except ImportError:
    IMAGING_SUPPORT = False

logger = logging.getLogger(__name__)

# WhatsApp rejects images over 5 MB; stay 20 KB clear of the hard limit
MAX_IMAGE_BYTES = 5 * 1024 * 1024 - 20 * 1024
TARGET_CONTENT_TYPE = "image/jpeg"

# (longest side in pixels or None to keep size, JPEG quality), tried in order
_ATTEMPTS: tuple[tuple[int | None, int], ...] = (
    (None, 85),
    (1600, 80),
    (1280, 74),
    (1080, 70),
    (960, 65),
)


@dataclass(frozen=True)
class NormalisedImage:
    data: bytes
    content_type: str


def _reencode(data: bytes, max_dimension: int | None, quality: int) -> bytes:
    with Image.open(io.BytesIO(data)) as source:
        image = ImageOps.exif_transpose(source)
        if image.mode != "RGB":
            image = image.convert("RGB")
        if max_dimension:
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        out = io.BytesIO()
        image.save(out, format="JPEG", quality=quality, optimize=True)
        return out.getvalue()


def shrink_image(data: bytes, content_type: str, max_bytes: int = MAX_IMAGE_BYTES) -> NormalisedImage:
    """Walk the quality ladder until the image fits within ``max_bytes``.

    Each step re-encodes the previous step's output. If no step fits, the
    last (smallest) attempt is returned. An encoding failure stops the
    ladder and returns the best result so far, or the input untouched if
    nothing was produced.
    """
    best = NormalisedImage(data, content_type)
    for max_dimension, quality in _ATTEMPTS:
        try:
            encoded = _reencode(best.data, max_dimension, quality)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Failed to optimise image: %s", exc)
            return best

        best = NormalisedImage(encoded, TARGET_CONTENT_TYPE)
        if len(encoded) <= max_bytes:
            return best

    logger.warning(
        "Image still exceeds WhatsApp limit after optimisation (%d > %d bytes)",
        len(best.data), max_bytes,
    )
    return best


async def normalise_image(
    data: bytes,
    content_type: str = "image/png",
    max_bytes: int = MAX_IMAGE_BYTES,
) -> NormalisedImage:
    """Return the image unchanged if it fits, otherwise a re-encoded JPEG.

    Never raises: without an imaging library the oversized image is passed
    through and left for the media API to judge.
    """
    if len(data) <= max_bytes:
        return NormalisedImage(data, content_type)

    if not IMAGING_SUPPORT:
        logger.warning(
            "Image exceeds WhatsApp limit but Pillow is unavailable (%d bytes)", len(data),
        )
        return NormalisedImage(data, content_type)

    logger.warning("Optimising image to satisfy WhatsApp limits (%d bytes)", len(data))
    return await asyncio.to_thread(shrink_image, data, content_type, max_bytes)
