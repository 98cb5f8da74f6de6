"""Tests for shrinking oversized images."""

from __future__ import annotations

import io
import random
from unittest.mock import patch

import pytest
from PIL import Image

from sakhi_bridge.whatsapp import images
from sakhi_bridge.whatsapp.images import (
    MAX_IMAGE_BYTES,
    NormalisedImage,
    normalise_image,
    shrink_image,
)


def _gradient_bmp(size: int = 1500) -> bytes:
    """An uncompressed bitmap: large on disk, tiny once JPEG encoded."""
    image = Image.linear_gradient("L").resize((size, size)).convert("RGB")
    out = io.BytesIO()
    image.save(out, format="BMP")
    return out.getvalue()


def _noise_png(size: int = 1500) -> bytes:
    """Random pixels: PNG cannot compress them, so the file is several MiB."""
    pixels = random.Random(0).randbytes(size * size * 3)
    out = io.BytesIO()
    Image.frombytes("RGB", (size, size), pixels).save(out, format="PNG")
    return out.getvalue()


class TestNormaliseImage:
    @pytest.mark.asyncio
    async def test_small_image_passes_through(self) -> None:
        data = b"\x89PNG small"
        result = await normalise_image(data, "image/png", max_bytes=1024)
        assert result == NormalisedImage(data, "image/png")

    @pytest.mark.asyncio
    async def test_oversized_image_is_reencoded_to_fit(self) -> None:
        data = _gradient_bmp()
        max_bytes = 1_000_000
        assert len(data) > max_bytes

        result = await normalise_image(data, "image/bmp", max_bytes=max_bytes)

        assert result.content_type == "image/jpeg"
        assert len(result.data) <= max_bytes
        with Image.open(io.BytesIO(result.data)) as decoded:
            assert decoded.format == "JPEG"
            assert max(decoded.size) <= 1500

    @pytest.mark.asyncio
    async def test_oversized_png_fits_default_limit(self) -> None:
        data = _noise_png()
        assert len(data) > MAX_IMAGE_BYTES

        result = await normalise_image(data, "image/png")

        assert result.content_type == "image/jpeg"
        assert len(result.data) <= MAX_IMAGE_BYTES
        with Image.open(io.BytesIO(result.data)) as decoded:
            assert decoded.format == "JPEG"

    @pytest.mark.asyncio
    async def test_without_pillow_oversized_image_passes_through(self) -> None:
        data = b"x" * 2048
        with patch.object(images, "IMAGING_SUPPORT", False):
            result = await normalise_image(data, "image/png", max_bytes=1024)
        assert result == NormalisedImage(data, "image/png")


class TestShrinkImage:
    def test_returns_smallest_attempt_when_nothing_fits(self) -> None:
        outputs = [b"a" * 500, b"b" * 400, b"c" * 300, b"d" * 200, b"e" * 150]
        with patch.object(images, "_reencode", side_effect=outputs) as reencode:
            result = shrink_image(b"z" * 1000, "image/png", max_bytes=100)
        assert reencode.call_count == 5
        assert result == NormalisedImage(b"e" * 150, "image/jpeg")

    def test_each_step_reencodes_previous_output(self) -> None:
        outputs = [b"a" * 500, b"b" * 50]
        with patch.object(images, "_reencode", side_effect=outputs) as reencode:
            result = shrink_image(b"z" * 1000, "image/png", max_bytes=100)
        assert result.data == b"b" * 50
        assert reencode.call_args_list[0].args == (b"z" * 1000, None, 85)
        assert reencode.call_args_list[1].args == (b"a" * 500, 1600, 80)

    def test_first_step_failure_returns_original(self) -> None:
        with patch.object(images, "_reencode", side_effect=OSError("cannot identify image")):
            result = shrink_image(b"not an image", "image/png", max_bytes=5)
        assert result == NormalisedImage(b"not an image", "image/png")

    def test_later_failure_returns_best_so_far(self) -> None:
        outputs = [b"a" * 500, ValueError("bad")]
        with patch.object(images, "_reencode", side_effect=outputs):
            result = shrink_image(b"z" * 1000, "image/png", max_bytes=100)
        assert result == NormalisedImage(b"a" * 500, "image/jpeg")

    def test_undecodable_bytes_are_returned_unchanged(self) -> None:
        result = shrink_image(b"definitely not an image", "image/png", max_bytes=5)
        assert result == NormalisedImage(b"definitely not an image", "image/png")
