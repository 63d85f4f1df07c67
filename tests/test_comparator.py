"""Tests for the Pillow comparator and the auto-cropper."""

import io

import pytest
from PIL import Image

from snapdiff.capture.cropper import ImageCropper
from snapdiff.differ.comparator import PillowComparator
from snapdiff.models.config import ComparatorOptions


class TestPillowComparator:

    def test_identical_images(self, png_factory):
        png = png_factory((10, 10))
        outcome = PillowComparator().compare_sync(png, png, ComparatorOptions())
        assert outcome.mismatch_fraction == 0.0
        assert outcome.diff_bytes is None

    def test_changed_region_fraction(self, png_factory):
        expected = png_factory((10, 10))
        actual = png_factory((10, 10), box=(0, 0, 2, 5))  # 10 of 100 pixels

        outcome = PillowComparator().compare_sync(actual, expected, ComparatorOptions())

        assert outcome.mismatch_fraction == pytest.approx(0.1)
        diff = Image.open(io.BytesIO(outcome.diff_bytes))
        assert diff.size == (10, 10)
        assert diff.getpixel((0, 0)) == (255, 0, 255)
        assert diff.getpixel((9, 9)) != (255, 0, 255)

    def test_small_channel_deltas_are_tolerated(self, png_factory):
        expected = png_factory((10, 10), color=(200, 200, 200))
        actual = png_factory((10, 10), color=(205, 195, 200))

        outcome = PillowComparator().compare_sync(actual, expected, ComparatorOptions(pixel_tolerance=16))
        assert outcome.mismatch_fraction == 0.0

        strict = PillowComparator().compare_sync(actual, expected, ComparatorOptions(pixel_tolerance=0))
        assert strict.mismatch_fraction == pytest.approx(1.0)

    def test_size_mismatch_counts_uncovered_area(self, png_factory):
        expected = png_factory((10, 5))
        actual = png_factory((10, 10))

        outcome = PillowComparator().compare_sync(actual, expected, ComparatorOptions())
        assert outcome.mismatch_fraction == pytest.approx(0.5)
        assert outcome.diff_bytes is not None

    @pytest.mark.asyncio
    async def test_async_compare(self, png_factory):
        png = png_factory((4, 4))
        outcome = await PillowComparator().compare(png, png_factory((4, 4), color=(0, 0, 0)), ComparatorOptions())
        assert outcome.mismatch_fraction == pytest.approx(1.0)


class TestImageCropper:

    def test_crops_to_content(self, png_factory):
        png = png_factory((20, 20), box=(5, 5, 10, 12))
        cropped = Image.open(io.BytesIO(ImageCropper().auto_crop_sync(png)))
        assert cropped.size == (5, 7)

    def test_blank_image_is_kept(self, png_factory):
        cropped = Image.open(io.BytesIO(ImageCropper().auto_crop_sync(png_factory((8, 6)))))
        assert cropped.size == (8, 6)

    @pytest.mark.asyncio
    async def test_async_crop(self, png_factory):
        png = png_factory((20, 20), box=(2, 2, 6, 6))
        cropped = Image.open(io.BytesIO(await ImageCropper().auto_crop(png)))
        assert cropped.size == (4, 4)
