"""
PriceScraper - discovers and extracts service prices from a business website.

Exploration policy:
- Try known service/pricing paths against the site, home page first
- Stop once enough categories are priced for the exploration tier
- Otherwise follow up to N same-site links whose text or href looks like a
  services/pricing/menu/booking page
- Facebook/Instagram pages are read once, with a longer settle delay
"""

import logging
import urllib.parse
from typing import Dict, List, Optional, Tuple

from playwright.async_api import Page

from ..config.production import ExplorationTier, ScraperConfig
from ..extraction.aggregator import PriceAggregator
from ..extraction.rules import PricingRules
from ..extraction.strategies import DedupKey, ExtractionPipeline
from ..models import ScrapeResult, ServiceCandidate
from ..navigation import NavigationEngine
from ..observability import SCRAPE_CONFIDENCE, SCRAPE_COUNT, SCRAPE_DURATION, observe_duration
from ..reliability.errors import classify_error
from ..runtime import BrowserRuntime
from .base import _log, is_same_site, join_path, registrable_host

LINK_VOCABULARY = ("service", "pricing", "price", "menu", "booking", "book", "rates")

LINKS_SCRIPT = """
() => {
    const links = [];
    for (const el of document.querySelectorAll('a[href], button')) {
        let href = el.getAttribute('href') || el.getAttribute('data-href') || '';
        if (!href && el.closest('a')) href = el.closest('a').getAttribute('href') || '';
        if (!href) continue;
        let absolute;
        try {
            absolute = new URL(href, document.baseURI).href;
        } catch (e) {
            continue;
        }
        links.push({
            text: (el.innerText || el.getAttribute('aria-label') || '').trim().slice(0, 80),
            href: absolute,
        });
    }
    return links;
}
"""

STOP_THRESHOLDS = {
    ExplorationTier.STANDARD: 2,
    ExplorationTier.THOROUGH: 3,
}


class PriceScraper:
    """Scrape gel / pedicure / acrylic prices for one business at a time."""

    def __init__(self,
                 runtime: BrowserRuntime,
                 rules: PricingRules,
                 *,
                 config: Optional[ScraperConfig] = None,
                 navigation: Optional[NavigationEngine] = None,
                 pipeline: Optional[ExtractionPipeline] = None,
                 aggregator: Optional[PriceAggregator] = None,
                 logger: Optional[logging.Logger] = None):
        self.runtime = runtime
        self.rules = rules
        self.config = config or ScraperConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.navigation = navigation or NavigationEngine(logger=self.logger)
        self.pipeline = pipeline or ExtractionPipeline(rules, logger=self.logger)
        self.aggregator = aggregator or PriceAggregator(rules, logger=self.logger)

    # ═══════════════════════════════════════════════════════════════════════
    # URL CLASSIFICATION
    # ═══════════════════════════════════════════════════════════════════════

    def is_scrapable_url(self, url: str) -> bool:
        """Reject empty, placeholder, non-HTTP and search/maps result URLs."""
        if not url or url == "#":
            return False
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False
        lowered = url.lower()
        return not any(pattern in lowered for pattern in self.config.excluded_url_patterns)

    def is_social_url(self, url: str) -> bool:
        host = registrable_host(url)
        return any(host == domain or host.endswith("." + domain) for domain in self.config.social_domains)

    @property
    def stop_threshold(self) -> int:
        return STOP_THRESHOLDS[self.config.exploration_tier]

    def priced_categories(self, seen: Dict[DedupKey, ServiceCandidate]) -> int:
        buckets = self.aggregator.bucket(seen.values())
        return sum(1 for prices in buckets.values() if prices)

    # ═══════════════════════════════════════════════════════════════════════
    # MAIN SCRAPING LOGIC
    # ═══════════════════════════════════════════════════════════════════════

    async def scrape_prices(self, url: str, name: str) -> ScrapeResult:
        """Scrape one business. Never raises; failures are zero-confidence results."""
        url = (url or "").strip()

        if not self.is_scrapable_url(url):
            _log(self.logger, "info", f"No valid website URL for {name}: {url!r}")
            SCRAPE_COUNT.labels("skipped").inc()
            return ScrapeResult.failure(url)

        _log(self.logger, "info", f"Scraping prices for {name}: {url}")

        try:
            with observe_duration(SCRAPE_DURATION):
                async with self.runtime.session():
                    async with self.runtime.page() as page:
                        candidates, source_url = await self._explore(page, url)
        except Exception as e:
            _log(self.logger, "error", f"Error scraping {name} ({url}) [{classify_error(e).value}]: {e}")
            SCRAPE_COUNT.labels("error").inc()
            return ScrapeResult.failure(url)

        result = self.aggregator.aggregate(candidates, source_url)

        SCRAPE_COUNT.labels("success" if result.success else "miss").inc()
        SCRAPE_CONFIDENCE.observe(result.confidence)
        _log(self.logger, "info",
             f"Scraped {name}: gel={result.gel} pedicure={result.pedicure} acrylic={result.acrylic} "
             f"confidence={result.confidence:.2f} candidates={len(candidates)}")
        return result

    async def _explore(self, page: Page, url: str) -> Tuple[List[ServiceCandidate], str]:
        seen: Dict[DedupKey, ServiceCandidate] = {}

        if self.is_social_url(url):
            if await self.navigation.navigate(page, url):
                await self._extract_safely(page, seen, url, settle_ms=self.config.social_settle_ms)
            return list(seen.values()), url

        # First page that contributed candidates
        source_url: Optional[str] = None
        discovered: List[str] = []
        tried = set()

        for path in self.config.service_paths:
            target = join_path(url, path)
            if target in tried:
                continue
            tried.add(target)

            _log(self.logger, "debug", f"Trying: {target}")
            if not await self.navigation.navigate(page, target, self.config.attempts_per_path):
                continue

            if not path:
                discovered = await self._discover_links(page, url)

            added = await self._extract_safely(page, seen, target, settle_ms=self.config.settle_ms)
            if added and source_url is None:
                source_url = target

            if self.priced_categories(seen) >= self.stop_threshold:
                _log(self.logger, "info", f"Found pricing at {target}")
                return list(seen.values()), source_url or url

        for link in discovered:
            if link in tried:
                continue
            tried.add(link)

            _log(self.logger, "debug", f"Following discovered link: {link}")
            if not await self.navigation.navigate(page, link, self.config.attempts_per_path):
                continue

            added = await self._extract_safely(page, seen, link, settle_ms=self.config.settle_ms)
            if added and source_url is None:
                source_url = link

            if self.priced_categories(seen) >= self.stop_threshold:
                break

        return list(seen.values()), source_url or url

    async def _extract_safely(self,
                              page: Page,
                              seen: Dict[DedupKey, ServiceCandidate],
                              target: str,
                              *,
                              settle_ms: int) -> List[ServiceCandidate]:
        """Extract the loaded page; a failing page keeps what earlier pages found."""
        try:
            return await self._extract_current(page, seen, settle_ms=settle_ms)
        except Exception as e:
            _log(self.logger, "warning",
                 f"Extraction failed on {target} [{classify_error(e).value}]: {e}")
            return []

    async def _extract_current(self,
                               page: Page,
                               seen: Dict[DedupKey, ServiceCandidate],
                               *,
                               settle_ms: int) -> List[ServiceCandidate]:
        await page.wait_for_timeout(settle_ms)
        await self.navigation.expand_content(
            page,
            max_clicks=self.config.max_expand_clicks,
            settle_ms=self.config.expand_settle_ms,
        )
        html = await page.content()
        return await self.pipeline.run(page, html, seen)

    async def _discover_links(self, page: Page, base_url: str) -> List[str]:
        """Same-site links whose text or href mentions services, pricing or booking."""
        try:
            raw_links = await page.evaluate(LINKS_SCRIPT)
        except Exception as e:
            _log(self.logger, "debug", f"Link discovery failed on {base_url}: {e}")
            return []

        # Redirects may land on a different host than the one we were given
        sites = {base_url, page.url}

        links = []
        for link in raw_links or []:
            href = (link.get("href") or "").split("#")[0]
            text = (link.get("text") or "").lower()
            if not href.startswith(("http://", "https://")):
                continue
            if not any(is_same_site(href, site) for site in sites):
                continue
            if not any(word in text or word in href.lower() for word in LINK_VOCABULARY):
                continue
            if href not in links:
                links.append(href)
            if len(links) >= self.config.max_discovered_links:
                break
        return links
