"""
Browser Pool
============
A fixed set of headless Chromium browsers shared by all fetch tasks.

Handles are assigned round-robin and the pool does not track which ones are
busy. When a batch is larger than the pool, several fetches run against the
same ``Browser`` at once. That is safe with Playwright because every fetch
opens its own page, and a ``Browser`` serves any number of concurrent pages.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from playwright.async_api import Browser, Playwright, async_playwright

from .exceptions import PoolInitError

logger = logging.getLogger(__name__)

# Subsystems a documentation crawl never needs. --no-sandbox matches
# container environments without user namespaces.
DEFAULT_LAUNCH_ARGS = (
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--disable-gpu',
)


class BrowserPool:
    """
    Round-robin pool of Playwright browsers.

    Usage::

        pool = BrowserPool(size=3)
        await pool.initialize()
        browser = pool.acquire()
        ...
        await pool.shutdown()
    """

    def __init__(
        self,
        size: int = 3,
        headless: bool = True,
        launch_args: Optional[Sequence[str]] = None,
    ):
        if size < 1:
            raise ValueError("pool size must be >= 1")
        self.size = size
        self.headless = headless
        self.launch_args = list(launch_args if launch_args is not None else DEFAULT_LAUNCH_ARGS)
        self._playwright: Optional[Playwright] = None
        self._browsers: List[Browser] = []
        self._index = 0

    @property
    def browsers(self) -> List[Browser]:
        return list(self._browsers)

    @property
    def is_initialized(self) -> bool:
        return len(self._browsers) == self.size

    async def initialize(self) -> None:
        """Launch ``size`` browsers. Any launch failure aborts the crawl."""
        if self._browsers:
            return
        try:
            self._playwright = await async_playwright().start()
            for i in range(self.size):
                browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=self.launch_args,
                )
                self._browsers.append(browser)
                logger.debug(f"[POOL] Browser {i + 1}/{self.size} launched")
        except Exception as e:
            logger.error(f"[POOL] Browser launch failed: {e}")
            await self.shutdown()
            raise PoolInitError(f"Failed to launch browser pool: {e}", cause=e) from e

        logger.info(f"[POOL] {self.size} browser(s) ready (headless={self.headless})")

    def acquire(self) -> Browser:
        """Next browser in round-robin order. Never blocks."""
        if not self._browsers:
            raise RuntimeError("BrowserPool.acquire() called before initialize()")
        browser = self._browsers[self._index]
        self._index = (self._index + 1) % len(self._browsers)
        return browser

    async def shutdown(self) -> None:
        """Close every browser and stop Playwright. Best effort."""
        browsers, self._browsers = self._browsers, []
        self._index = 0
        if browsers:
            results = await asyncio.gather(
                *(b.close() for b in browsers), return_exceptions=True
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"[POOL] Error closing browser: {result}")
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"[POOL] Error stopping Playwright: {e}")
            self._playwright = None
        if browsers:
            logger.info(f"[POOL] Closed {len(browsers)} browser(s)")

    async def __aenter__(self) -> "BrowserPool":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
