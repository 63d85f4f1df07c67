"""Auto-cropper — trims the uniform background border around captured page content."""

from __future__ import annotations

import asyncio
import io

from PIL import Image, ImageChops


class ImageCropper:
    """Crops a screenshot to the bounding box of pixels that differ from its corner colour."""

    def __init__(self, tolerance: int = 0):
        self.tolerance = tolerance

    async def auto_crop(self, image_bytes: bytes) -> bytes:
        return await asyncio.to_thread(self.auto_crop_sync, image_bytes)

    def auto_crop_sync(self, image_bytes: bytes) -> bytes:
        img = Image.open(io.BytesIO(image_bytes)).convert("RGB")
        background = Image.new("RGB", img.size, img.getpixel((0, 0)))
        delta = ImageChops.difference(img, background).convert("L")
        if self.tolerance:
            delta = delta.point(lambda v: 255 if v > self.tolerance else 0)
        bbox = delta.getbbox()
        # Blank page: keep it as is
        if bbox is not None and bbox != (0, 0, img.width, img.height):
            img = img.crop(bbox)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
