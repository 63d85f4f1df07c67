"""Helpers for telling URLs from local paths and reading either."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

HTTP_TIMEOUT = 60.0

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_url(location: str) -> bool:
    return bool(_URL_RE.match(location))


def local_path(location: str) -> Path:
    """Resolve a plain path or `file://` URI to a filesystem path."""
    if location.startswith("file://"):
        return Path(unquote(urlparse(location).path))
    return Path(location)


async def read_location(location: str, client: httpx.AsyncClient | None = None) -> bytes:
    """Fetch the bytes behind a URL, `file://` URI or local path.

    Raises httpx.HTTPError or OSError; callers attach workflow context.
    """
    if is_url(location):
        if client is not None:
            return await _get(client, location)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True) as c:
            return await _get(c, location)
    return await asyncio.to_thread(local_path(location).read_bytes)


async def _get(client: httpx.AsyncClient, url: str) -> bytes:
    response = await client.get(url)
    response.raise_for_status()
    return response.content
