"""Anti-detection measures for scraping pages.

- Desktop user agent rotation
- Realistic request headers
- Navigator property masking per stealth level
- Network filtering of heavy resources and trackers
"""

from __future__ import annotations

import random
import urllib.parse
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set
import logging

from playwright.async_api import BrowserContext, Page, Route


class StealthLevel(str, Enum):
    """Stealth operation levels."""
    BASIC = "basic"           # Headers and user agent only
    MODERATE = "moderate"     # Plus navigator masking
    AGGRESSIVE = "aggressive" # Plus canvas/WebGL fingerprint noise


@dataclass
class UserAgentPool:
    """Pool of realistic desktop user agents for rotation."""
    desktop_chrome: List[str] = field(default_factory=lambda: [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    ])

    desktop_edge: List[str] = field(default_factory=lambda: [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36 Edg/128.0.0.0",
    ])

    def all_desktop(self) -> List[str]:
        return self.desktop_chrome + self.desktop_edge


# Resource types that carry no pricing text
BLOCKED_RESOURCE_TYPES: Set[str] = {"image", "media", "font", "stylesheet"}

# Analytics, advertising and tracking hosts (matched as host suffixes)
TRACKER_DOMAINS: Set[str] = {
    "google-analytics.com",
    "googletagmanager.com",
    "googleadservices.com",
    "googlesyndication.com",
    "doubleclick.net",
    "adservice.google.com",
    "connect.facebook.net",
    "facebook.net",
    "hotjar.com",
    "segment.io",
    "segment.com",
    "mixpanel.com",
    "amplitude.com",
    "clarity.ms",
    "bat.bing.com",
    "ads.linkedin.com",
    "analytics.tiktok.com",
    "adsrvr.org",
    "criteo.com",
    "taboola.com",
    "outbrain.com",
    "quantserve.com",
    "scorecardresearch.com",
}

# Subdomain labels that identify tracking endpoints on otherwise unknown hosts
TRACKER_HOST_TOKENS = ("analytics", "tracking", "tracker", "adserver", "pixel")


class StealthManager:
    """Anti-detection configuration for browser contexts and pages."""

    def __init__(self,
                 stealth_level: StealthLevel = StealthLevel.MODERATE,
                 *,
                 accept_language: str = "en-US,en;q=0.9",
                 viewport: Optional[Dict[str, int]] = None,
                 logger: Optional[logging.Logger] = None,
                 rng: Optional[random.Random] = None):
        self.stealth_level = stealth_level
        self.accept_language = accept_language
        self.viewport = viewport or {"width": 1920, "height": 1080}
        self.logger = logger or logging.getLogger(__name__)
        self.user_agent_pool = UserAgentPool()
        self._rng = rng or random.Random()
        self.blocked_requests = 0

    def pick_user_agent(self) -> str:
        """Choose a desktop user agent for the next context."""
        return self._rng.choice(self.user_agent_pool.all_desktop())

    def get_extra_headers(self) -> Dict[str, str]:
        return {
            "Accept-Language": self.accept_language,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Upgrade-Insecure-Requests": "1",
        }

    def get_context_options(self) -> Dict[str, Any]:
        """Options for browser.new_context(); user agent must be set at creation."""
        user_agent = self.pick_user_agent()
        self.logger.debug(f"Selected user agent: {user_agent[:60]}...")
        return {
            "user_agent": user_agent,
            "viewport": dict(self.viewport),
            "locale": self.accept_language.split(",")[0],
            "extra_http_headers": self.get_extra_headers(),
            "java_script_enabled": True,
        }

    async def apply_stealth_to_context(self, context: BrowserContext) -> None:
        """Inject masking scripts according to the stealth level."""
        if self.stealth_level in (StealthLevel.MODERATE, StealthLevel.AGGRESSIVE):
            await context.add_init_script("""
                Object.defineProperty(navigator, 'webdriver', {
                    get: () => undefined,
                });

                Object.defineProperty(navigator, 'plugins', {
                    get: () => [1, 2, 3, 4, 5],
                });

                Object.defineProperty(navigator, 'languages', {
                    get: () => ['en-US', 'en'],
                });

                window.chrome = window.chrome || { runtime: {} };
            """)

        if self.stealth_level == StealthLevel.AGGRESSIVE:
            await context.add_init_script("""
                const originalToDataURL = HTMLCanvasElement.prototype.toDataURL;
                HTMLCanvasElement.prototype.toDataURL = function(type, quality) {
                    const ctx = this.getContext('2d');
                    if (ctx) {
                        ctx.fillStyle = `rgba(${Math.floor(Math.random() * 10)}, 0, 0, 0.01)`;
                        ctx.fillRect(0, 0, 1, 1);
                    }
                    return originalToDataURL.apply(this, arguments);
                };

                const originalGetParameter = WebGLRenderingContext.prototype.getParameter;
                WebGLRenderingContext.prototype.getParameter = function(parameter) {
                    if (parameter === 37445) return 'Google Inc. (Intel)';
                    if (parameter === 37446) return 'ANGLE (Intel, Intel(R) UHD Graphics Direct3D11 vs_5_0 ps_5_0, D3D11)';
                    return originalGetParameter.apply(this, arguments);
                };
            """)

    @staticmethod
    def is_tracker_url(url: str) -> bool:
        host = (urllib.parse.urlparse(url).hostname or "").lower()
        if not host:
            return False
        if any(host == domain or host.endswith("." + domain) for domain in TRACKER_DOMAINS):
            return True
        # Whole labels only: "pixel.example.com" is a tracker, "pixelnailbar.com" is not
        return any(label in TRACKER_HOST_TOKENS for label in host.split(".")[:-2])

    def should_block_request(self, resource_type: str, url: str) -> bool:
        """Decide whether a request is dropped before it leaves the browser."""
        # Top-level documents are the pages being scraped
        if resource_type == "document":
            return False
        if resource_type in BLOCKED_RESOURCE_TYPES:
            return True
        return self.is_tracker_url(url)

    async def install_request_filter(self, page: Page) -> None:
        """Route every request of the page through should_block_request."""

        async def _handle(route: Route) -> None:
            request = route.request
            if self.should_block_request(request.resource_type, request.url):
                self.blocked_requests += 1
                await route.abort()
            else:
                await route.continue_()

        await page.route("**/*", _handle)

    def get_stealth_metrics(self) -> Dict[str, Any]:
        """Get stealth operation metrics."""
        return {
            "stealth_level": self.stealth_level.value,
            "blocked_requests": self.blocked_requests,
            "user_agents_available": len(self.user_agent_pool.all_desktop()),
        }
