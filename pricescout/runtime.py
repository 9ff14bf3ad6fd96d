from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import async_playwright, Browser, Page, Playwright

from .config.production import BrowserConfig
from .observability import ACTIVE_PAGES, BROWSER_LAUNCHES
from .reliability.errors import BrowserError
from .reliability.stealth import StealthManager, StealthLevel


DEFAULT_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--disable-accelerated-2d-canvas',
    '--window-size=1920,1080',
    '--disable-blink-features=AutomationControlled',
    '--disable-features=IsolateOrigins,site-per-process',
    '--no-first-run',
    '--no-default-browser-check',
    '--disable-extensions',
    '--disable-sync',
    '--disable-translate',
    '--mute-audio',
    '--hide-scrollbars',
    '--password-store=basic',
    '--use-mock-keychain',
]


class BrowserRuntime:
    """Owns the Playwright driver and one shared Chromium process.

    Callers hold the browser through ``session()`` (or ``acquire``/``release``);
    the process is launched lazily on the first acquisition, relaunched if it
    disconnected, and closed when the last holder releases it.
    """

    def __init__(self, config: Optional[BrowserConfig] = None, *,
                 args: Optional[List[str]] = None,
                 stealth_manager: Optional[StealthManager] = None,
                 logger: Optional[logging.Logger] = None) -> None:
        self._config = config or BrowserConfig()
        self._args = list(args) if args is not None else list(DEFAULT_LAUNCH_ARGS)
        self._logger = logger or logging.getLogger(__name__)
        self._playwright: Optional[Playwright] = None
        self._lock = asyncio.Lock()
        self._holders = 0
        self.browser: Optional[Browser] = None

        self.stealth_manager = stealth_manager or StealthManager(
            StealthLevel(self._config.stealth_level),
            accept_language=self._config.accept_language,
            viewport={"width": self._config.viewport_width, "height": self._config.viewport_height},
            logger=self._logger,
        )

    @property
    def holders(self) -> int:
        return self._holders

    @property
    def is_running(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    async def acquire(self) -> Browser:
        """Register a holder and return a connected browser, launching it if needed."""
        async with self._lock:
            if not self.is_running:
                await self._launch()
            self._holders += 1
            return self.browser

    async def release(self) -> None:
        """Drop a holder; the last one out closes the browser."""
        async with self._lock:
            if self._holders > 0:
                self._holders -= 1
            if self._holders == 0:
                await self._shutdown()

    @asynccontextmanager
    async def session(self) -> AsyncIterator["BrowserRuntime"]:
        await self.acquire()
        try:
            yield self
        finally:
            await self.release()

    async def _launch(self) -> None:
        if self.browser is not None:
            self._logger.warning("Browser disconnected, relaunching Chromium")
            await self._shutdown()

        self._logger.info("Starting Playwright runtime…")
        try:
            self._playwright = await async_playwright().start()
            self.browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
                args=self._args,
                timeout=self._config.launch_timeout_seconds * 1000,
            )
        except Exception as e:
            await self._shutdown()
            raise BrowserError(f"Chromium launch failed: {e}", cause=e)

        BROWSER_LAUNCHES.inc()
        self._logger.info(
            f"Chromium launched with stealth level {self.stealth_manager.stealth_level.value} "
            f"(headless={self._config.headless})"
        )

    async def _shutdown(self) -> None:
        if self.browser:
            try:
                await self.browser.close()
            except Exception as e:
                self._logger.debug(f"Error closing browser: {e}")
            self.browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                self._logger.debug(f"Error stopping Playwright: {e}")
            self._playwright = None

    async def stop(self) -> None:
        """Close the browser regardless of outstanding holders."""
        async with self._lock:
            if self.browser or self._playwright:
                self._logger.info("Shutting down Playwright runtime…")
            self._holders = 0
            await self._shutdown()

    async def new_page(self) -> Page:
        """Open a page in its own context with stealth headers and request filtering.

        The caller must hold a session. Failures propagate.
        """
        if not self.is_running:
            raise BrowserError("new_page() called without a live browser session")

        context = await self.browser.new_context(**self.stealth_manager.get_context_options())
        try:
            await self.stealth_manager.apply_stealth_to_context(context)
            page = await context.new_page()
            await self.stealth_manager.install_request_filter(page)
        except Exception:
            await context.close()
            raise

        ACTIVE_PAGES.inc()
        return page

    async def close_page(self, page: Page) -> None:
        try:
            await page.context.close()
        except Exception as e:
            self._logger.warning(f"Error closing page context: {e}")
        finally:
            ACTIVE_PAGES.dec()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """A fresh page that is closed, with its context, on every exit path."""
        page = await self.new_page()
        try:
            yield page
        finally:
            await self.close_page(page)
