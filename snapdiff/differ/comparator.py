"""Image comparators — score how much two screenshots differ and render a diff image."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import Optional, Protocol

from PIL import Image, ImageChops

from snapdiff.models.config import ComparatorOptions


@dataclass
class ComparisonOutcome:
    mismatch_fraction: float  # 0.0 identical, 1.0 every pixel changed
    diff_bytes: Optional[bytes] = None  # PNG highlighting changed pixels


class Comparator(Protocol):
    async def compare(
        self,
        actual_bytes: bytes,
        expected_bytes: bytes,
        options: ComparatorOptions,
    ) -> ComparisonOutcome: ...


class PillowComparator:
    """Per-pixel RGB comparison with a per-channel tolerance."""

    async def compare(
        self,
        actual_bytes: bytes,
        expected_bytes: bytes,
        options: ComparatorOptions,
    ) -> ComparisonOutcome:
        return await asyncio.to_thread(self.compare_sync, actual_bytes, expected_bytes, options)

    def compare_sync(
        self,
        actual_bytes: bytes,
        expected_bytes: bytes,
        options: ComparatorOptions,
    ) -> ComparisonOutcome:
        actual = Image.open(io.BytesIO(actual_bytes)).convert("RGB")
        expected = Image.open(io.BytesIO(expected_bytes)).convert("RGB")

        width = max(actual.width, expected.width)
        height = max(actual.height, expected.height)
        total = width * height
        if total == 0:
            return ComparisonOutcome(mismatch_fraction=0.0)

        actual_canvas = _pad(actual, width, height)
        expected_canvas = _pad(expected, width, height)

        # Largest channel delta per pixel, then thresholded into a changed-pixel mask
        delta = ImageChops.difference(actual_canvas, expected_canvas)
        r, g, b = delta.split()
        channel_max = ImageChops.lighter(ImageChops.lighter(r, g), b)
        tolerance = options.pixel_tolerance
        mask = channel_max.point(lambda v: 255 if v > tolerance else 0)

        # Area covered by only one of the images always counts as changed
        overlap_w = min(actual.width, expected.width)
        overlap_h = min(actual.height, expected.height)
        if (overlap_w, overlap_h) != (width, height):
            if overlap_w < width:
                mask.paste(255, (overlap_w, 0, width, height))
            if overlap_h < height:
                mask.paste(255, (0, overlap_h, width, height))

        changed = mask.histogram()[255]
        if changed == 0:
            return ComparisonOutcome(mismatch_fraction=0.0)

        faded = Image.blend(expected_canvas, Image.new("RGB", (width, height), (255, 255, 255)), 0.7)
        faded.paste(Image.new("RGB", (width, height), tuple(options.diff_color)), mask=mask)
        buf = io.BytesIO()
        faded.save(buf, format="PNG")
        return ComparisonOutcome(mismatch_fraction=changed / total, diff_bytes=buf.getvalue())


def _pad(image: Image.Image, width: int, height: int) -> Image.Image:
    if image.size == (width, height):
        return image
    canvas = Image.new("RGB", (width, height), (0, 0, 0))
    canvas.paste(image, (0, 0))
    return canvas
