"""Image download cache — each screenshot is fetched at most once per run."""

from __future__ import annotations

import asyncio
import logging

import httpx

from snapdiff.errors import TransportError
from snapdiff.url_utils import HTTP_TIMEOUT, read_location

logger = logging.getLogger(__name__)


class ImageCache:
    """Memoises image bytes by location (URL, `file://` URI or local path)."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._pending: dict[str, asyncio.Task] = {}

    async def get_image_bytes(self, location: str, cache: bool = True) -> bytes:
        if not cache and location not in self._pending:
            return await self._download(location)
        task = self._pending.get(location)
        if task is None:
            task = asyncio.ensure_future(self._download(location))
            self._pending[location] = task
        try:
            return await asyncio.shield(task)
        except TransportError:
            # Do not memoise failures
            self._pending.pop(location, None)
            raise

    async def _download(self, location: str) -> bytes:
        logger.debug("Downloading image %s", location)
        try:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True)
            return await read_location(location, client=self._client)
        except (httpx.HTTPError, OSError) as e:
            raise TransportError(f"Failed to download image: {e}", {"location": location}) from e

    def clear(self) -> None:
        self._pending.clear()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
