"""Process-wide cache of the golden manifest."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from snapdiff.models.snapshot import Manifest, clone_manifest

logger = logging.getLogger(__name__)


class BaselineCache:
    """Loads the golden manifest once and hands out independent copies.

    Every `get()` returns a fresh structural clone, so callers may mutate the
    result without affecting later readers.
    """

    def __init__(self, loader: Callable[[], Awaitable[Manifest]]):
        self._loader = loader
        self._manifest: Manifest | None = None
        self._lock = asyncio.Lock()
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._manifest is not None

    async def get(self) -> Manifest:
        if self._manifest is None:
            async with self._lock:
                if self._manifest is None:
                    self._manifest = await self._loader()
                    self.load_count += 1
                    logger.debug("Cached golden manifest (%d pages)", len(self._manifest))
        return clone_manifest(self._manifest)
