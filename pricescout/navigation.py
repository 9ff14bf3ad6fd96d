"""Page navigation with tiered wait strategies, scheme fallback and content expansion."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from playwright.async_api import Page

from .config.production import NavigationConfig
from .observability import NAVIGATION_FAILURES
from .reliability.errors import classify_error, is_blocked_by_client

EXPAND_VOCABULARY = ("see more", "load more", "view all", "show all", "expand", "read more")

EXPAND_SCRIPT = """
([vocabulary, maxClicks]) => {
    const candidates = document.querySelectorAll(
        'button, a, [role="button"], summary, div, span'
    );
    const isVisible = (el) => {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return rect.width > 0 && rect.height > 0 &&
            style.visibility !== 'hidden' && style.display !== 'none';
    };
    let clicked = 0;
    for (const el of candidates) {
        if (clicked >= maxClicks) break;
        const label = ((el.innerText || '') + ' ' + (el.getAttribute('aria-label') || ''))
            .trim().toLowerCase();
        if (!label || label.length > 40) continue;
        if (!vocabulary.some((word) => label.includes(word))) continue;
        if (!isVisible(el)) continue;
        try {
            el.click();
            clicked += 1;
        } catch (e) {}
    }
    return clicked;
}
"""


def swap_scheme(url: str) -> str:
    """http -> https and https -> http."""
    if url.startswith("https://"):
        return "http://" + url[len("https://"):]
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


class NavigationEngine:
    """Loads URLs into pages and reports success as a boolean.

    Navigation failures are expected on hostile targets, so every transport
    error is absorbed here and turned into ``False``.
    """

    def __init__(self,
                 config: Optional[NavigationConfig] = None,
                 *,
                 logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config or NavigationConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    @property
    def strategies(self) -> List[Tuple[str, int]]:
        return list(self.config.wait_strategies)

    def strategy_for(self, attempt: int) -> Tuple[str, int]:
        strategies = self.strategies
        return strategies[attempt % len(strategies)]

    async def navigate(self, page: Page, url: str, max_attempts: Optional[int] = None) -> bool:
        attempts = max(1, max_attempts if max_attempts is not None else self.config.max_attempts)

        for attempt in range(attempts):
            wait_until, timeout = self.strategy_for(attempt)
            try:
                await page.goto(url, wait_until=wait_until, timeout=timeout)
                return True
            except Exception as e:
                category = classify_error(e)
                NAVIGATION_FAILURES.labels(category.value).inc()
                self.logger.warning(
                    f"Navigation attempt {attempt + 1}/{attempts} to {url} failed "
                    f"[{category.value}, {wait_until}]: {str(e).splitlines()[0] if str(e) else type(e).__name__}"
                )

                if is_blocked_by_client(e):
                    alt_url = swap_scheme(url)
                    if alt_url != url:
                        self.logger.info(f"Trying alternate scheme: {alt_url}")
                        try:
                            await page.goto(alt_url, wait_until=wait_until, timeout=timeout)
                            return True
                        except Exception as alt_error:
                            NAVIGATION_FAILURES.labels(classify_error(alt_error).value).inc()
                            self.logger.warning(f"Alternate scheme also failed: {alt_url}")

            if attempt < attempts - 1:
                await self._sleep(self.config.backoff_ms * (attempt + 1) / 1000.0)

        return False

    async def expand_content(self,
                             page: Page,
                             *,
                             max_clicks: int = 3,
                             settle_ms: int = 1000) -> int:
        """Click up to ``max_clicks`` visible "see more"-style controls.

        Best effort: failures are logged and reported as zero clicks.
        """
        try:
            clicked = await page.evaluate(EXPAND_SCRIPT, [list(EXPAND_VOCABULARY), max_clicks])
            if clicked:
                self.logger.debug(f"Expanded {clicked} content controls on {page.url}")
                await page.wait_for_timeout(settle_ms)
            return int(clicked or 0)
        except Exception as e:
            self.logger.debug(f"Content expansion skipped: {e}")
            return 0
