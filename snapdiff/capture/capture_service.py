"""Capture collaborator — renders a page URL in a matrix of browsers and saves screenshots."""

from __future__ import annotations

import asyncio
import logging
import platform
import uuid
from pathlib import Path
from typing import Protocol

from playwright.async_api import Browser, Playwright, async_playwright
from pydantic import BaseModel, Field

from snapdiff.models.config import ViewportConfig

logger = logging.getLogger(__name__)


class CaptureResult(BaseModel):
    os: str
    browser: str
    image_location: str


class CaptureInfo(BaseModel):
    results: list[CaptureResult] = Field(default_factory=list)


class CaptureService(Protocol):
    async def capture_url(self, url: str) -> CaptureInfo: ...


class PlaywrightCaptureService:
    """Captures full-page screenshots with locally installed Playwright browsers.

    Use as an async context manager; browsers are launched once and shared by
    every capture. Concurrent captures are bounded by `max_parallel`.
    """

    def __init__(
        self,
        browsers: list[str],
        capture_dir: str | Path,
        viewport: ViewportConfig | None = None,
        max_parallel: int = 3,
    ):
        self.browser_names = browsers
        self.capture_dir = Path(capture_dir)
        self.viewport = viewport or ViewportConfig()
        self.os_name = platform.system()
        self._semaphore = asyncio.Semaphore(max_parallel)
        self._playwright: Playwright | None = None
        self._browsers: dict[str, Browser] = {}

    async def __aenter__(self) -> "PlaywrightCaptureService":
        self.capture_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        for name in self.browser_names:
            logger.debug("Launching %s...", name)
            browser_type = getattr(self._playwright, name)
            self._browsers[name] = await browser_type.launch(headless=True)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for browser in self._browsers.values():
            await browser.close()
        self._browsers.clear()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def capture_url(self, url: str) -> CaptureInfo:
        if not self._browsers:
            raise RuntimeError("PlaywrightCaptureService used outside 'async with'")
        async with self._semaphore:
            results = []
            for name, browser in self._browsers.items():
                path = self.capture_dir / f"{uuid.uuid4().hex}.png"
                context = await browser.new_context(
                    viewport={"width": self.viewport.width, "height": self.viewport.height},
                )
                try:
                    page = await context.new_page()
                    await page.goto(url, wait_until="networkidle")
                    # Let web fonts and transitions settle
                    await page.wait_for_timeout(500)
                    await page.screenshot(path=str(path), full_page=True)
                finally:
                    await context.close()
                logger.debug("Captured %s in %s -> %s", url, name, path)
                results.append(CaptureResult(os=self.os_name, browser=name, image_location=str(path)))
            return CaptureInfo(results=results)
